from django.db import models as django_db_models


class Source(django_db_models.Model):
    name = django_db_models.CharField(max_length=255)
    slug = django_db_models.CharField(max_length=255)
    status = django_db_models.PositiveSmallIntegerField()
    status_name = django_db_models.CharField(max_length=255)

    # Lower value wins conflicts on shared catalog records
    priority = django_db_models.PositiveIntegerField(null=True)

    credentials = django_db_models.JSONField(null=True)
    catalog_column_map = django_db_models.JSONField(null=True)
    inventory_column_map = django_db_models.JSONField(null=True)

    catalog_sync_enabled = django_db_models.BooleanField(default=True)
    catalog_sync_time = django_db_models.CharField(max_length=5, null=True)
    inventory_sync_enabled = django_db_models.BooleanField(default=True)
    inventory_sync_interval_minutes = django_db_models.PositiveIntegerField(null=True)

    created_at = django_db_models.DateTimeField(auto_now_add=True)
    updated_at = django_db_models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "sources"
        unique_together = ["slug"]


class CatalogProduct(django_db_models.Model):
    upc = django_db_models.CharField(max_length=64)
    name = django_db_models.TextField(null=True)
    brand = django_db_models.CharField(max_length=255, null=True)
    category = django_db_models.CharField(max_length=255, null=True)
    description = django_db_models.TextField(null=True)
    manufacturer_part_number = django_db_models.CharField(max_length=255, null=True)
    source = django_db_models.CharField(max_length=255, null=True)

    created_at = django_db_models.DateTimeField(auto_now_add=True)
    updated_at = django_db_models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "catalog_products"
        unique_together = ["upc"]


class SourceInventory(django_db_models.Model):
    source = django_db_models.ForeignKey(Source, on_delete=django_db_models.CASCADE, related_name="inventory")
    vendor_sku = django_db_models.CharField(max_length=255)
    upc = django_db_models.CharField(max_length=64, null=True)
    quantity_available = django_db_models.IntegerField(default=0)
    last_updated = django_db_models.DateTimeField()

    created_at = django_db_models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "source_inventory"
        unique_together = ["source", "vendor_sku"]


class SyncSnapshot(django_db_models.Model):
    key = django_db_models.CharField(max_length=255)
    content = django_db_models.TextField()

    updated_at = django_db_models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "sync_snapshots"
        unique_together = ["key"]


class SyncJobRun(django_db_models.Model):
    source = django_db_models.ForeignKey(Source, on_delete=django_db_models.CASCADE, related_name="job_runs")
    job_type = django_db_models.CharField(max_length=32)
    status = django_db_models.CharField(max_length=32)
    last_run_at = django_db_models.DateTimeField(null=True)

    total_records = django_db_models.IntegerField(default=0)
    records_updated = django_db_models.IntegerField(default=0)
    records_added = django_db_models.IntegerField(default=0)
    records_skipped = django_db_models.IntegerField(default=0)
    records_errors = django_db_models.IntegerField(default=0)

    last_error = django_db_models.TextField(null=True)

    created_at = django_db_models.DateTimeField(auto_now_add=True)
    updated_at = django_db_models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "sync_job_runs"
        unique_together = ["source", "job_type"]
