import uuid

import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="AnalysisSession",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("user_session", models.CharField(blank=True, db_index=True, max_length=255)),
                ("asin", models.CharField(blank=True, db_index=True, max_length=10)),
                ("product_url", models.URLField(max_length=2000)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("current_step", models.PositiveSmallIntegerField(default=0)),
                ("total_steps", models.PositiveSmallIntegerField(default=8)),
                ("progress_percentage", models.FloatField(default=0.0)),
                ("current_message", models.CharField(default="Queued for analysis...", max_length=255)),
                ("result", models.JSONField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "analysis_sessions",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("asin", models.CharField(db_index=True, max_length=10)),
                ("country", models.CharField(default="us", max_length=5)),
                ("product_url", models.URLField(blank=True, max_length=2000)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("pending_analysis", "Pending Analysis"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("reviews", models.JSONField(blank=True, default=list)),
                ("product_description", models.TextField(blank=True)),
                ("total_reviews_on_amazon", models.PositiveIntegerField(blank=True, null=True)),
                ("product_title", models.CharField(blank=True, max_length=500, null=True)),
                ("product_image_url", models.URLField(blank=True, max_length=2000, null=True)),
                ("have_product_data", models.BooleanField(default=False)),
                ("product_data_scraped_at", models.DateTimeField(blank=True, null=True)),
                ("openai_result", models.JSONField(blank=True, null=True)),
                ("detailed_analysis", models.JSONField(blank=True, null=True)),
                ("fake_percentage", models.FloatField(blank=True, null=True)),
                ("grade", models.CharField(blank=True, max_length=1, null=True)),
                ("amazon_rating", models.FloatField(blank=True, null=True)),
                ("adjusted_rating", models.FloatField(blank=True, null=True)),
                ("explanation", models.TextField(blank=True, null=True)),
                ("first_analyzed_at", models.DateTimeField(blank=True, null=True)),
                ("last_analyzed_at", models.DateTimeField(blank=True, null=True)),
                ("price_analysis", models.JSONField(blank=True, null=True)),
                (
                    "price_analysis_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("price_analyzed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "products",
                "ordering": ["-created_at"],
            },
        ),
        migrations.AddIndex(
            model_name="analysissession",
            index=models.Index(fields=["user_session", "asin", "status"], name="analysis_se_user_se_3f1c2a_idx"),
        ),
        migrations.AddIndex(
            model_name="analysissession",
            index=models.Index(fields=["status", "created_at"], name="analysis_se_status_8b7d4e_idx"),
        ),
        migrations.AddIndex(
            model_name="product",
            index=models.Index(fields=["status", "last_analyzed_at"], name="products_status_5a9e0c_idx"),
        ),
        migrations.AddConstraint(
            model_name="product",
            constraint=models.UniqueConstraint(fields=("asin", "country"), name="unique_asin_country"),
        ),
    ]
