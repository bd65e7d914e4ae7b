"""
Removal of previously imported content.

Used by the orchestrator's clear phase and by the clear_imported_data
management command. Imported content records are the ones carrying a source
URL; their page and product records go with them. Imported templates are
the ones whose filename starts with ``imported/``.
"""

import logging
import shutil
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from django.conf import settings
from django.db import transaction

from importer.models import ContentRecord, PageRecord, ProductRecord, Template
from importer.services.tenancy import TenantContext

logger = logging.getLogger(__name__)

IMPORTED_TEMPLATE_PREFIX = "imported/"


@dataclass
class ClearResult:
    pages: int = 0
    products: int = 0
    content: int = 0
    templates: int = 0
    template_files_removed: bool = False

    def to_dict(self):
        return asdict(self)


def clear_imported_data(
    ctx: TenantContext,
    templates_dir: Optional[str] = None,
    dry_run: bool = False,
) -> ClearResult:
    """
    Delete the tenant's imported pages, products, content and templates.

    Args:
        ctx: Tenant whose database is cleared
        templates_dir: Root of generated template files (default from settings)
        dry_run: Count what would be deleted without deleting it
    """
    alias = ctx.db_alias
    content = ContentRecord.objects.using(alias).exclude(source_url="")
    pages = PageRecord.objects.using(alias).filter(content__in=content)
    products = ProductRecord.objects.using(alias).filter(content__in=content)
    templates = Template.objects.using(alias).filter(
        filename__startswith=IMPORTED_TEMPLATE_PREFIX
    )

    result = ClearResult(
        pages=pages.count(),
        products=products.count(),
        content=content.count(),
        templates=templates.count(),
    )
    if dry_run:
        return result

    with transaction.atomic(using=alias):
        pages.delete()
        products.delete()
        content.delete()
        templates.delete()

    root = Path(templates_dir or getattr(settings, "IMPORTER_TEMPLATES_DIR", "templates"))
    imported_dir = root / IMPORTED_TEMPLATE_PREFIX.rstrip("/")
    if imported_dir.is_dir():
        shutil.rmtree(imported_dir)
        result.template_files_removed = True

    logger.info(
        f"[{ctx.tenant}] Cleared imported data: {result.content} content records, "
        f"{result.pages} pages, {result.products} products, {result.templates} templates"
    )
    return result
