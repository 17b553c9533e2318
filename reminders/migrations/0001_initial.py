from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Reminder",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("chat_id", models.CharField(db_index=True, max_length=50)),
                ("title", models.CharField(max_length=255)),
                ("time", models.DateTimeField()),
                ("job_id", models.CharField(blank=True, default="", max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["created_at", "id"],
            },
        ),
        migrations.CreateModel(
            name="ChatSession",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("chat_id", models.CharField(max_length=50, unique=True)),
                ("user_name", models.CharField(blank=True, default="", max_length=255)),
                ("conversation_history", models.JSONField(blank=True, default=list)),
                (
                    "state",
                    models.CharField(
                        choices=[
                            ("idle", "Idle"),
                            ("awaiting_delete_confirm", "Awaiting delete confirmation"),
                            ("awaiting_edit_field", "Awaiting new field values"),
                        ],
                        default="idle",
                        max_length=32,
                    ),
                ),
                ("state_reminder_id", models.CharField(blank=True, default="", max_length=50)),
                ("state_fields", models.JSONField(blank=True, default=list)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
    ]
