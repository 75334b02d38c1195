import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('orders', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('session_id', models.CharField(blank=True, db_index=True, help_text='Guest session that created the payment.', max_length=64, null=True)),
                ('table_id', models.CharField(blank=True, default='', max_length=64)),
                ('total_amount', models.DecimalField(decimal_places=2, max_digits=10)),
                ('method', models.CharField(choices=[('cash', 'Cash'), ('card', 'Card'), ('online', 'Online')], max_length=10)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('completed', 'Completed'), ('failed', 'Failed'), ('refunded', 'Refunded')], db_index=True, default='pending', max_length=10)),
                ('processor_intent_id', models.CharField(blank=True, help_text='Payment intent id at the processor (e.g. Stripe pi_...).', max_length=255, null=True, unique=True)),
                ('processor_instrument_id', models.CharField(blank=True, help_text='Saved payment method used for an off-session charge.', max_length=255, null=True)),
                ('failure_reason', models.CharField(blank=True, choices=[('insufficient_funds', 'Insufficient funds'), ('expired_card', 'Expired card'), ('incorrect_cvc', 'Incorrect CVC'), ('generic_decline', 'Declined')], max_length=32, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('settled_by', models.ForeignKey(blank=True, help_text='Staff member who took a cash payment.', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='settled_payments', to=settings.AUTH_USER_MODEL)),
                ('user', models.ForeignKey(blank=True, help_text='Registered payer. Null for guest payments.', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='payments', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Payment',
                'verbose_name_plural': 'Payments',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='PaymentOrderLink',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='The order total captured when the link was created.', max_digits=10)),
                ('settled', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payment_links', to='orders.order')),
                ('payment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='order_links', to='payments.payment')),
            ],
            options={
                'constraints': [models.UniqueConstraint(fields=('payment', 'order'), name='unique_payment_order_link'), models.UniqueConstraint(condition=models.Q(('settled', True)), fields=('order',), name='unique_settled_order_link')],
            },
        ),
        migrations.AddField(
            model_name='payment',
            name='orders',
            field=models.ManyToManyField(related_name='payments', through='payments.PaymentOrderLink', to='orders.order'),
        ),
    ]
