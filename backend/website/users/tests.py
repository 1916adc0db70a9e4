# users/tests.py
from django.test import TestCase
from users.models import User
from users.serializers import UserMiniSerializer, UserFixtureSerializer


class UserSerializerTests(TestCase):
    def test_public_author_payload(self):
        u = User.objects.create(id=3, name="Clementine Bauch", username="Samantha", email="Nathan@yesenia.net")
        self.assertEqual(str(u), "Samantha")
        self.assertEqual(
            UserMiniSerializer(u).data,
            {"id": 3, "name": "Clementine Bauch", "username": "Samantha", "email": "Nathan@yesenia.net"},
        )

    def test_fixture_extra_fields_dropped(self):
        ser = UserFixtureSerializer(data={
            "id": 1, "name": "Leanne Graham", "username": "Bret", "email": "Sincere@april.biz",
            "phone": "1-770-736-8031 x56442", "company": {"name": "Romaguera-Crona"},
        })
        self.assertTrue(ser.is_valid(), ser.errors)
        self.assertEqual(set(ser.validated_data), {"id", "name", "username", "email"})

    def test_fixture_requires_valid_email_and_id(self):
        ser = UserFixtureSerializer(data={"id": 0, "name": "x", "username": "x", "email": "nope"})
        self.assertFalse(ser.is_valid())
        self.assertIn("email", ser.errors)
        self.assertIn("id", ser.errors)
