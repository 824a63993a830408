from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings

from backoffice.context_processors import app_version
from shops.models import Organization, PaymentMethod, Profile, Role, Shop


class ShopCatalogTests(TestCase):
    def setUp(self):
        self.org = Organization.objects.create(name='Truffles', code='TRF')

    def test_str(self):
        shop = Shop.objects.create(organization=self.org, code='TRK', name='Trunk Road')
        self.assertEqual(str(self.org), 'Truffles (TRF)')
        self.assertEqual(str(shop), 'TRK - Trunk Road')

    def test_shop_code_unique_per_organization(self):
        Shop.objects.create(organization=self.org, code='TRK', name='Trunk Road')
        other = Organization.objects.create(name='Other', code='OTH')
        Shop.objects.create(organization=other, code='TRK', name='Elsewhere')
        with self.assertRaises(IntegrityError):
            Shop.objects.create(organization=self.org, code='TRK', name='Duplicate')

    def test_shops_ordered_by_display_order(self):
        Shop.objects.create(organization=self.org, code='B', name='Second', display_order=2)
        Shop.objects.create(organization=self.org, code='A', name='First', display_order=1)
        self.assertEqual([s.code for s in self.org.shops.all()], ['A', 'B'])

    def test_payment_method_is_cash(self):
        cash = PaymentMethod.objects.create(organization=self.org, name='Cash', method_type='cash', channel='cash')
        upi = PaymentMethod.objects.create(organization=self.org, name='UPI', method_type='upi')
        self.assertTrue(cash.is_cash)
        self.assertFalse(upi.is_cash)
        self.assertEqual(upi.channel, '')
        self.assertTrue(upi.for_sales)
        self.assertFalse(upi.for_expenses)

    def test_profile_links_user_to_organization(self):
        user = get_user_model().objects.create_user(username='asha', password='pw')
        role = Role.objects.create(organization=self.org, name='Manager')
        Profile.objects.create(user=user, organization=self.org, role=role, full_name='Asha Rao')
        self.assertEqual(user.profile.organization, self.org)
        self.assertEqual(str(user.profile), 'Asha Rao')


class AppVersionContextTests(SimpleTestCase):
    def test_version_and_currency_exposed(self):
        with override_settings(APP_VERSION='1.2.3', REGISTER_CURRENCY='INR'):
            ctx = app_version(RequestFactory().get('/'))
        self.assertEqual(ctx, {'APP_VERSION': '1.2.3', 'REGISTER_CURRENCY': 'INR'})
