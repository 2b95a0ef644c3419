from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("tournaments", "0001_initial"),
        ("users", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="user",
            name="registered_tournaments",
            field=models.ManyToManyField(
                blank=True, related_name="registered_users", to="tournaments.tournament"
            ),
        ),
    ]
