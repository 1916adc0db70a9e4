from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="User",
            fields=[
                ("id", models.IntegerField(primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("username", models.CharField(db_index=True, max_length=150)),
                ("email", models.EmailField(max_length=254)),
            ],
            options={
                "ordering": ["id"],
            },
        ),
    ]
