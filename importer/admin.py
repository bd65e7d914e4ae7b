"""
Django admin configuration for Site Importer models.

Read-only views of import jobs, their staged pages and error logs, plus the
CMS templates and content records the importer produces.
"""

from django.contrib import admin
from django.utils.html import format_html

from importer.exceptions import UnknownTenantError
from importer.models import (
    ContentRecord,
    ImportJob,
    ImportJobError,
    PageRecord,
    ProductRecord,
    StagedItem,
    Template,
)
from importer.services.job_control import stop_import
from importer.services.tenancy import resolve_tenant

STATUS_COLORS = {
    "pending": "#ffc107",
    "completed": "#28a745",
    "failed": "#dc3545",
    "cancelled": "#6c757d",
}
RUNNING_COLOR = "#007bff"


class ImportJobErrorInline(admin.TabularInline):
    model = ImportJobError
    extra = 0
    fields = ["timestamp", "phase", "url", "error_type", "message"]
    readonly_fields = fields
    ordering = ["-timestamp"]
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(ImportJob)
class ImportJobAdmin(admin.ModelAdmin):
    """
    Admin interface for import jobs.

    Jobs are created through the API or the run_import command; the admin
    only shows progress and can request cancellation.
    """

    list_display = [
        "id_short",
        "tenant",
        "source_url",
        "source_kind",
        "status_badge",
        "page_count",
        "created_at",
        "duration_display",
    ]
    list_filter = [
        "status",
        "source_kind",
        "tenant",
        ("created_at", admin.DateFieldListFilter),
    ]
    search_fields = ["source_url", "id"]
    readonly_fields = [
        "id",
        "tenant",
        "source_url",
        "source_kind",
        "config",
        "status",
        "progress_message",
        "page_count",
        "cancel_requested",
        "error_message",
        "ruleset",
        "platform_info",
        "created_at",
        "started_at",
        "completed_at",
    ]
    ordering = ["-created_at"]
    inlines = [ImportJobErrorInline]
    actions = ["stop_jobs"]

    fieldsets = (
        ("Job Information", {
            "fields": ("id", "tenant", "source_url", "source_kind", "config"),
        }),
        ("Progress", {
            "fields": ("status", "progress_message", "page_count", "cancel_requested"),
        }),
        ("Timing", {
            "fields": ("created_at", "started_at", "completed_at"),
        }),
        ("Error Details", {
            "fields": ("error_message",),
            "classes": ("collapse",),
        }),
        ("Generated Data", {
            "fields": ("platform_info", "ruleset"),
            "classes": ("collapse",),
        }),
    )

    def id_short(self, obj):
        """Display shortened job ID."""
        return str(obj.id)[:8]
    id_short.short_description = "Job ID"

    def status_badge(self, obj):
        """Display status as colored badge."""
        color = STATUS_COLORS.get(obj.status, RUNNING_COLOR)
        return format_html(
            '<span style="background-color: {}; color: white; '
            'padding: 2px 8px; border-radius: 4px;">{}</span>',
            color, obj.get_status_display()
        )
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    def duration_display(self, obj):
        """Display job duration in human-readable format."""
        if obj.duration_seconds:
            seconds = obj.duration_seconds
            if seconds < 60:
                return f"{seconds:.1f}s"
            elif seconds < 3600:
                return f"{seconds / 60:.1f}m"
            else:
                return f"{seconds / 3600:.1f}h"
        return "-"
    duration_display.short_description = "Duration"

    @admin.action(description="Stop selected import jobs")
    def stop_jobs(self, request, queryset):
        """Request cancellation of the selected unfinished jobs."""
        stopped = 0
        for job in queryset:
            if job.is_terminal:
                continue
            try:
                ctx = resolve_tenant(job.tenant)
            except UnknownTenantError as e:
                self.message_user(request, str(e), level="error")
                continue
            if stop_import(ctx, job.id) is not None:
                stopped += 1
        self.message_user(request, f"Stop requested for {stopped} job(s).")

    def has_add_permission(self, request):
        """Jobs are started through the API or the run_import command."""
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(StagedItem)
class StagedItemAdmin(admin.ModelAdmin):
    list_display = ["url", "title", "item_type", "fingerprint_short", "status", "job"]
    list_filter = ["status", "item_type"]
    search_fields = ["url", "title", "fingerprint"]
    readonly_fields = [
        "job",
        "url",
        "title",
        "fingerprint",
        "item_type",
        "status",
        "metadata",
        "raw_html",
        "stripped_html",
        "analysis_html",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["job"]

    def fingerprint_short(self, obj):
        return obj.fingerprint[:12]
    fingerprint_short.short_description = "Fingerprint"

    def has_add_permission(self, request):
        return False


@admin.register(ImportJobError)
class ImportJobErrorAdmin(admin.ModelAdmin):
    """Admin interface for the import error log."""

    list_display = ["timestamp", "phase", "error_type", "url_truncated", "tenant", "job"]
    list_filter = ["phase", "error_type", "tenant", ("timestamp", admin.DateFieldListFilter)]
    search_fields = ["url", "message", "error_type"]
    readonly_fields = [
        "id",
        "job",
        "tenant",
        "phase",
        "url",
        "error_type",
        "message",
        "stack_trace",
        "timestamp",
    ]
    ordering = ["-timestamp"]

    def url_truncated(self, obj):
        """Display truncated URL."""
        if obj.url and len(obj.url) > 60:
            return obj.url[:57] + "..."
        return obj.url or "-"
    url_truncated.short_description = "URL"

    def has_add_permission(self, request):
        return False


@admin.register(Template)
class TemplateAdmin(admin.ModelAdmin):
    list_display = ["name", "filename", "content_type", "updated_at"]
    list_filter = ["content_type"]
    search_fields = ["name", "filename"]
    readonly_fields = ["created_at", "updated_at"]


@admin.register(ContentRecord)
class ContentRecordAdmin(admin.ModelAdmin):
    list_display = ["slug", "module", "title", "source_url", "updated_at"]
    list_filter = ["module"]
    search_fields = ["slug", "title", "source_url"]
    readonly_fields = ["created_at", "updated_at"]


@admin.register(PageRecord)
class PageRecordAdmin(admin.ModelAdmin):
    list_display = ["title", "content", "template", "status"]
    list_filter = ["status"]
    search_fields = ["title", "content__slug"]
    raw_id_fields = ["content", "template"]


@admin.register(ProductRecord)
class ProductRecordAdmin(admin.ModelAdmin):
    list_display = ["sku", "title", "price", "template", "status"]
    list_filter = ["status"]
    search_fields = ["sku", "title", "content__slug"]
    raw_id_fields = ["content", "template"]
