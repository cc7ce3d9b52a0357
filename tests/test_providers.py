import unittest

import requests

from fakes import DummyResponse, DummySession, StoreTestCase, question_bank
from roundplay.errors import ValidationError
from roundplay.models import Participant
from roundplay.providers import (
    HttpEligibilityProvider,
    ParticipantRef,
    QuestionSpec,
    SeededRandomProvider,
    SqlParticipantDirectory,
    StaticEligibilityProvider,
    StaticQuestionProvider,
)


class TestHttpEligibilityProvider(unittest.TestCase):
    def test_requires_base_url(self):
        with self.assertRaises(ValueError):
            HttpEligibilityProvider("", min_balance=1)

    def test_balance_request(self):
        session = DummySession(DummyResponse(json_data={"balance": 150}))
        provider = HttpEligibilityProvider(
            "https://wallet.example.com/", min_balance=100, api_key="k", timeout=4, session=session
        )
        self.assertTrue(provider.is_eligible(7, "user_7"))
        call = session.calls[0]
        self.assertEqual(call["method"], "GET")
        self.assertEqual(call["url"], "https://wallet.example.com/api/v1/balances/user_7")
        self.assertEqual(call["headers"]["Authorization"], "Bearer k")
        self.assertEqual(call["timeout"], 4)

    def test_low_balance_is_not_eligible(self):
        session = DummySession(DummyResponse(json_data={"balance": "99.5"}))
        provider = HttpEligibilityProvider("https://wallet.example.com", 100, session=session)
        self.assertFalse(provider.is_eligible(1, "u1"))

    def test_errors_mean_not_eligible(self):
        for response in (
            DummyResponse(status_code=500, text="boom"),
            DummyResponse(json_data={"amount": 500}),
            DummyResponse(text="not json"),
            requests.ConnectionError("down"),
        ):
            with self.subTest(response=response):
                provider = HttpEligibilityProvider(
                    "https://wallet.example.com", 1, session=DummySession(response)
                )
                self.assertFalse(provider.is_eligible(1, "u1"))

    def test_custom_path_template(self):
        session = DummySession(DummyResponse(json_data={"balance": 1}))
        provider = HttpEligibilityProvider(
            "https://wallet.example.com",
            1,
            path_template="/players/{participant_id}/balance",
            session=session,
        )
        provider.is_eligible(12)
        self.assertEqual(session.calls[0]["url"], "https://wallet.example.com/players/12/balance")


class TestStaticProviders(unittest.TestCase):
    def test_static_eligibility(self):
        provider = StaticEligibilityProvider([3, "vip"])
        self.assertTrue(provider.is_eligible(3))
        self.assertTrue(provider.is_eligible(8, "vip"))
        self.assertFalse(provider.is_eligible(8, "guest"))

    def test_question_spec_validation(self):
        with self.assertRaises(ValidationError):
            QuestionSpec(prompt="Q?", options=("A", "B", "C"), correct_index=0)
        with self.assertRaises(ValidationError):
            QuestionSpec(prompt="Q?", options=("A", "B", "C", "D"), correct_index=4)
        spec = QuestionSpec.from_mapping(
            {"prompt": "2+2?", "options": [3, 4, 5, 6], "correct_index": 1, "category": "math"}
        )
        self.assertEqual(spec.options, ("3", "4", "5", "6"))

    def test_question_bank(self):
        provider = StaticQuestionProvider(question_bank(2) + question_bank(1, category="art"))
        self.assertEqual(len(provider.generate(3, "medium", [])), 3)
        # Not enough in the category: fall back to the whole bank.
        self.assertEqual(len(provider.generate(2, "medium", ["art"])), 2)
        self.assertEqual(provider.generate(1, "medium", ["art"])[0].category, "art")
        with self.assertRaises(ValidationError):
            provider.generate(4, "medium", [])

    def test_seeded_random_provider(self):
        first = SeededRandomProvider("abc")
        second = SeededRandomProvider("abc")
        a1, a2 = first.next(), first.next()
        b1, b2 = second.next(), second.next()
        self.assertEqual(a1.random(), b1.random())
        self.assertEqual(a2.random(), b2.random())
        self.assertNotEqual(SeededRandomProvider("abc").next().random(), a2.random())


class TestSqlParticipantDirectory(StoreTestCase):
    def test_get_or_create(self):
        directory = SqlParticipantDirectory()
        with self.repository.transaction() as db:
            created = directory.resolve(db, ParticipantRef("u1"))
            self.assertEqual(created.display_name, "Useru1")
        with self.repository.transaction() as db:
            same = directory.resolve(db, ParticipantRef("u1", "Renamed"))
            self.assertEqual(same.id, created.id)
        with self.Session() as db:
            self.assertEqual(Participant.get_by_external_id(db, "u1").display_name, "Renamed")


if __name__ == "__main__":
    unittest.main()
