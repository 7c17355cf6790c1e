from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('bookings', '0001_initial'),
    ]

    operations = [
        migrations.AddConstraint(
            model_name='booking',
            constraint=models.UniqueConstraint(
                condition=models.Q(('stripe_payment_intent_id', ''), _negated=True),
                fields=('stripe_payment_intent_id',),
                name='unique_booking_payment_intent',
            ),
        ),
    ]
