import uuid

from django.contrib.auth.models import User
from django.db import models
from django.utils import timezone


CITY_CHOICES = [
    ('Chandigarh', 'Chandigarh'),
    ('Mohali', 'Mohali'),
    ('Zirakpur', 'Zirakpur'),
    ('Panchkula', 'Panchkula'),
    ('Other', 'Other'),
]

PROPERTY_TYPE_CHOICES = [
    ('Apartment', 'Apartment'),
    ('Villa', 'Villa'),
    ('Plot', 'Plot'),
    ('Office', 'Office'),
    ('Retail', 'Retail'),
]

BHK_CHOICES = [
    ('1', '1'),
    ('2', '2'),
    ('3', '3'),
    ('4', '4'),
    ('Studio', 'Studio'),
]

PURPOSE_CHOICES = [
    ('Buy', 'Buy'),
    ('Rent', 'Rent'),
]

TIMELINE_CHOICES = [
    ('0-3m', '0-3 months'),
    ('3-6m', '3-6 months'),
    ('>6m', 'More than 6 months'),
    ('Exploring', 'Exploring'),
]

SOURCE_CHOICES = [
    ('Website', 'Website'),
    ('Referral', 'Referral'),
    ('Walk-in', 'Walk-in'),
    ('Call', 'Call'),
    ('Other', 'Other'),
]

STATUS_CHOICES = [
    ('New', 'New'),
    ('Qualified', 'Qualified'),
    ('Contacted', 'Contacted'),
    ('Visited', 'Visited'),
    ('Negotiation', 'Negotiation'),
    ('Converted', 'Converted'),
    ('Dropped', 'Dropped'),
]

# Property types that are sized in bedrooms and therefore need a BHK value
RESIDENTIAL_PROPERTY_TYPES = ('Apartment', 'Villa')

DEFAULT_STATUS = 'New'


class Buyer(models.Model):
    """A prospective property buyer tracked through the sales pipeline"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    full_name = models.CharField(max_length=80)
    email = models.EmailField(null=True, blank=True)
    phone = models.CharField(max_length=15)
    city = models.CharField(max_length=20, choices=CITY_CHOICES, db_index=True)
    property_type = models.CharField(max_length=20, choices=PROPERTY_TYPE_CHOICES, db_index=True)
    bhk = models.CharField(max_length=10, choices=BHK_CHOICES, null=True, blank=True)
    purpose = models.CharField(max_length=10, choices=PURPOSE_CHOICES)
    budget_min = models.PositiveBigIntegerField(null=True, blank=True)
    budget_max = models.PositiveBigIntegerField(null=True, blank=True)
    timeline = models.CharField(max_length=20, choices=TIMELINE_CHOICES, db_index=True)
    source = models.CharField(max_length=20, choices=SOURCE_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=DEFAULT_STATUS, db_index=True)
    notes = models.TextField(null=True, blank=True)
    tags = models.JSONField(default=list, blank=True)
    owner = models.ForeignKey(User, on_delete=models.PROTECT, related_name='buyers')
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    # Stamped by services.buyer_service; doubles as the optimistic concurrency token
    updated_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-updated_at']

    def __str__(self):
        return f"{self.full_name} ({self.phone})"


class BuyerHistory(models.Model):
    """Append-only audit entry for a buyer lead"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # History outlives the lead it describes, so no cascading and no DB constraint
    buyer = models.ForeignKey(
        Buyer,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name='history',
    )
    changed_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='buyer_changes')
    changed_at = models.DateTimeField(default=timezone.now, db_index=True)
    diff = models.JSONField(default=dict)

    class Meta:
        ordering = ['-changed_at']
        verbose_name_plural = 'buyer history'

    def __str__(self):
        return f"{self.buyer_id} - {self.diff.get('action')} - {self.changed_at}"

    @property
    def action(self):
        return self.diff.get('action')

    @property
    def changes(self):
        return self.diff.get('changes', {})
