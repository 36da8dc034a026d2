from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='ComplianceMetricsRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('violation_risk', models.FloatField(default=0)),
                ('compliance_score', models.FloatField(default=100)),
                ('hours_until_violation', models.FloatField(default=24)),
                ('rule_updates_count', models.IntegerField(default=0)),
                ('last_rule_sync', models.DateTimeField(blank=True, null=True)),
                ('active_alerts', models.IntegerField(default=0)),
                ('overrides_used', models.IntegerField(default=0)),
                ('overrides_this_week', models.IntegerField(default=0)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Compliance Metrics',
                'verbose_name_plural': 'Compliance Metrics',
            },
        ),
        migrations.CreateModel(
            name='ComplianceRule',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rule_id', models.CharField(max_length=100, unique=True)),
                ('category', models.CharField(choices=[('HOS', 'Hours of Service'), ('ELD', 'Electronic Logging Device'), ('Inspection', 'Inspection'), ('Medical', 'Medical'), ('Vehicle', 'Vehicle'), ('Driver', 'Driver')], max_length=20)),
                ('title', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('source', models.CharField(blank=True, help_text='Authoritative source, e.g. 49 CFR 395.3', max_length=200)),
                ('severity', models.CharField(choices=[('Critical', 'Critical'), ('Important', 'Important'), ('Standard', 'Standard')], max_length=20)),
                ('effective_date', models.DateField()),
                ('last_updated', models.DateTimeField()),
                ('parameters', models.JSONField(default=dict, help_text='Rule-specific thresholds and lead times')),
                ('metric', models.CharField(blank=True, choices=[('current_driving_hours', 'Current Driving Hours'), ('time_since_last_break', 'Time Since Last Break'), ('on_duty_elapsed', 'On-Duty Elapsed'), ('weekly_on_duty_hours', 'Weekly On-Duty Hours')], help_text='Duty-state value the rule is measured against; blank for informational rules', max_length=30)),
                ('can_override', models.BooleanField(default=False)),
                ('deprecated', models.BooleanField(default=False)),
                ('applicable_vehicle_types', models.JSONField(default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Compliance Rule',
                'verbose_name_plural': 'Compliance Rules',
                'ordering': ['rule_id'],
            },
        ),
        migrations.CreateModel(
            name='RuleUpdateRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('notification_id', models.CharField(max_length=100, unique=True)),
                ('rule_id', models.CharField(db_index=True, max_length=100)),
                ('change_type', models.CharField(choices=[('New', 'New'), ('Modified', 'Modified'), ('Deprecated', 'Deprecated')], max_length=20)),
                ('effective_date', models.DateField()),
                ('summary', models.TextField()),
                ('impact_level', models.CharField(choices=[('High', 'High'), ('Medium', 'Medium'), ('Low', 'Low')], max_length=10)),
                ('action_required', models.BooleanField(default=False)),
                ('deadline', models.DateField(blank=True, null=True)),
                ('parameters', models.JSONField(blank=True, null=True)),
                ('recorded_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Rule Update',
                'verbose_name_plural': 'Rule Updates',
                'ordering': ['-recorded_at', '-id'],
            },
        ),
        migrations.CreateModel(
            name='ViolationOverrideRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('override_id', models.CharField(max_length=100, unique=True)),
                ('timestamp', models.DateTimeField(db_index=True)),
                ('prediction_id', models.CharField(max_length=150)),
                ('rule_id', models.CharField(db_index=True, max_length=100)),
                ('reason', models.TextField()),
                ('driver_id', models.CharField(max_length=100)),
                ('risk_acknowledged', models.BooleanField()),
                ('estimated_fine_accepted', models.BooleanField(default=False)),
                ('supervisor_id', models.CharField(blank=True, max_length=100)),
                ('supervisor_approved_at', models.DateTimeField(blank=True, null=True)),
                ('supervisor_notes', models.TextField(blank=True)),
                ('documented_in_trip', models.BooleanField(default=False)),
                ('trip_id', models.CharField(blank=True, max_length=100)),
            ],
            options={
                'verbose_name': 'Violation Override',
                'verbose_name_plural': 'Violation Overrides',
                'ordering': ['-timestamp'],
                'indexes': [models.Index(fields=['driver_id', 'timestamp'], name='override_driver_ts_idx')],
            },
        ),
    ]
