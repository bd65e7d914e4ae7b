"""
Tenant context for import jobs.

Every phase receives a TenantContext explicitly and routes its ORM calls
through ``ctx.db_alias``. Background tasks get the tenant *name* and resolve
the context again on their side of the queue.
"""

import logging
from dataclasses import dataclass

from django.conf import settings

from importer.exceptions import UnknownTenantError

DEFAULT_TENANT = "default"
TENANT_HEADER = "X-Tenant"


@dataclass(frozen=True)
class TenantContext:
    """Tenant name plus the Django database alias holding its data."""

    tenant: str
    db_alias: str = "default"


def get_tenant_databases():
    return getattr(settings, "IMPORTER_TENANT_DATABASES", {DEFAULT_TENANT: "default"})


def resolve_tenant(tenant=None) -> TenantContext:
    """
    Build the context for a tenant name.

    Raises:
        UnknownTenantError: tenant is not mapped to a configured database
    """
    name = tenant or DEFAULT_TENANT
    alias = get_tenant_databases().get(name)
    if alias is None or alias not in settings.DATABASES:
        raise UnknownTenantError(f"No database configured for tenant '{name}'")
    return TenantContext(tenant=name, db_alias=alias)


def tenant_from_request(request) -> TenantContext:
    """Resolve the tenant named by the request's X-Tenant header."""
    return resolve_tenant(request.headers.get(TENANT_HEADER) or DEFAULT_TENANT)


class JobLogAdapter(logging.LoggerAdapter):
    """Prefixes records with the tenant and job id and adds both as extras."""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra.update(self.extra)
        return f"[{self.extra['tenant']}/{self.extra['job_id']}] {msg}", kwargs


def job_logger(logger, ctx: TenantContext, job_id) -> JobLogAdapter:
    return JobLogAdapter(logger, {"tenant": ctx.tenant, "job_id": str(job_id)})
