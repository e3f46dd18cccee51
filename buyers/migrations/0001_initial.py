from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Buyer',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('full_name', models.CharField(max_length=80)),
                ('email', models.EmailField(blank=True, max_length=254, null=True)),
                ('phone', models.CharField(max_length=15)),
                ('city', models.CharField(choices=[('Chandigarh', 'Chandigarh'), ('Mohali', 'Mohali'), ('Zirakpur', 'Zirakpur'), ('Panchkula', 'Panchkula'), ('Other', 'Other')], db_index=True, max_length=20)),
                ('property_type', models.CharField(choices=[('Apartment', 'Apartment'), ('Villa', 'Villa'), ('Plot', 'Plot'), ('Office', 'Office'), ('Retail', 'Retail')], db_index=True, max_length=20)),
                ('bhk', models.CharField(blank=True, choices=[('1', '1'), ('2', '2'), ('3', '3'), ('4', '4'), ('Studio', 'Studio')], max_length=10, null=True)),
                ('purpose', models.CharField(choices=[('Buy', 'Buy'), ('Rent', 'Rent')], max_length=10)),
                ('budget_min', models.PositiveBigIntegerField(blank=True, null=True)),
                ('budget_max', models.PositiveBigIntegerField(blank=True, null=True)),
                ('timeline', models.CharField(choices=[('0-3m', '0-3 months'), ('3-6m', '3-6 months'), ('>6m', 'More than 6 months'), ('Exploring', 'Exploring')], db_index=True, max_length=20)),
                ('source', models.CharField(choices=[('Website', 'Website'), ('Referral', 'Referral'), ('Walk-in', 'Walk-in'), ('Call', 'Call'), ('Other', 'Other')], max_length=20)),
                ('status', models.CharField(choices=[('New', 'New'), ('Qualified', 'Qualified'), ('Contacted', 'Contacted'), ('Visited', 'Visited'), ('Negotiation', 'Negotiation'), ('Converted', 'Converted'), ('Dropped', 'Dropped')], db_index=True, default='New', max_length=20)),
                ('notes', models.TextField(blank=True, null=True)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ('updated_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='buyers', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-updated_at'],
            },
        ),
        migrations.CreateModel(
            name='BuyerHistory',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('changed_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('diff', models.JSONField(default=dict)),
                ('buyer', models.ForeignKey(db_constraint=False, on_delete=django.db.models.deletion.DO_NOTHING, related_name='history', to='buyers.buyer')),
                ('changed_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='buyer_changes', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name_plural': 'buyer history',
                'ordering': ['-changed_at'],
            },
        ),
    ]
