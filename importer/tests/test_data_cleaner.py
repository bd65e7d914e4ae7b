"""
Tests for clearing previously imported data.
"""

from pathlib import Path

import pytest

from importer.models import ContentRecord, PageRecord, ProductRecord, Template
from importer.services.data_cleaner import clear_imported_data


@pytest.fixture
def imported_records(db):
    template = Template.objects.create(filename="imported/product-abc.njk", name="Imported Product")
    Template.objects.create(filename="theme/base.njk", name="Base")

    page = ContentRecord.objects.create(slug="about", module="pages", source_url="https://shop.example/about")
    PageRecord.objects.create(content=page, template=template, title="About")
    product = ContentRecord.objects.create(
        slug="products-widget", module="products", source_url="https://shop.example/products/widget"
    )
    ProductRecord.objects.create(sku="W-1", content=product, template=template, title="Widget")

    handmade = ContentRecord.objects.create(slug="contact", module="pages")
    PageRecord.objects.create(content=handmade, title="Contact")


def test_dry_run_counts_only(ctx, imported_records, tmp_path):
    result = clear_imported_data(ctx, templates_dir=tmp_path, dry_run=True)

    assert result.to_dict() == {
        "pages": 1, "products": 1, "content": 2, "templates": 1, "template_files_removed": False,
    }
    assert ContentRecord.objects.count() == 3


def test_deletes_imported_records_and_files(ctx, imported_records, tmp_path):
    imported_dir = Path(tmp_path) / "imported"
    imported_dir.mkdir()
    (imported_dir / "product-abc.njk").write_text("<main></main>")

    result = clear_imported_data(ctx, templates_dir=tmp_path)

    assert result.content == 2
    assert result.template_files_removed is True
    assert not imported_dir.exists()
    assert list(ContentRecord.objects.values_list("slug", flat=True)) == ["contact"]
    assert PageRecord.objects.count() == 1
    assert ProductRecord.objects.count() == 0
    assert list(Template.objects.values_list("filename", flat=True)) == ["theme/base.njk"]
