from django.db import migrations, models


def fill_route_bounds(apps, schema_editor):
    from rides.services.exceptions import MalformedPolylineError
    from rides.services.route import decode

    Posting = apps.get_model('rides', 'Posting')
    for posting in Posting.objects.exclude(route_geometry=''):
        try:
            points = decode(posting.route_geometry)
        except MalformedPolylineError:
            continue
        if not points:
            continue
        lats = [lat for lat, _ in points]
        lngs = [lng for _, lng in points]
        Posting.objects.filter(pk=posting.pk).update(
            route_min_latitude=min(lats),
            route_max_latitude=max(lats),
            route_min_longitude=min(lngs),
            route_max_longitude=max(lngs),
        )


class Migration(migrations.Migration):

    dependencies = [
        ('rides', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='posting',
            name='route_min_latitude',
            field=models.FloatField(blank=True, editable=False, null=True),
        ),
        migrations.AddField(
            model_name='posting',
            name='route_max_latitude',
            field=models.FloatField(blank=True, editable=False, null=True),
        ),
        migrations.AddField(
            model_name='posting',
            name='route_min_longitude',
            field=models.FloatField(blank=True, editable=False, null=True),
        ),
        migrations.AddField(
            model_name='posting',
            name='route_max_longitude',
            field=models.FloatField(blank=True, editable=False, null=True),
        ),
        migrations.RunPython(fill_route_bounds, migrations.RunPython.noop),
    ]
