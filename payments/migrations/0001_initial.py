from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='PaymentRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('stripe_payment_intent_id', models.CharField(max_length=100, unique=True)),
                ('service_code', models.CharField(blank=True, max_length=100)),
                ('payment_type', models.CharField(blank=True, max_length=20)),
                ('amount_cents', models.IntegerField(default=0)),
                ('currency', models.CharField(max_length=3)),
                ('status', models.CharField(choices=[('created', 'Created'), ('processing', 'Processing'), ('succeeded', 'Succeeded'), ('failed', 'Failed'), ('refunded', 'Refunded')], db_index=True, default='created', max_length=20)),
                ('customer_email', models.EmailField(blank=True, max_length=254)),
                ('customer_name', models.CharField(blank=True, max_length=255)),
                ('processed_events', models.JSONField(blank=True, default=list)),
                ('confirmation_sent_at', models.DateTimeField(blank=True, null=True)),
                ('failure_notified_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'payments_paymentrecord',
                'ordering': ['-created_at'],
            },
        ),
    ]
