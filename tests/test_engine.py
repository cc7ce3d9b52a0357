import threading
import unittest

from sqlalchemy import func, select

from fakes import (
    DummySession,
    FixedRandomProvider,
    ScriptedRandom,
    StoreTestCase,
    question_bank,
)
from roundplay.config import WebhookSettings
from roundplay.engine import answer_points
from roundplay.errors import ValidationError
from roundplay.models import Claim, Enrollment, GameSession, OutcomeEvent, Participant
from roundplay.providers import ParticipantRef, StaticEligibilityProvider, StaticQuestionProvider
from roundplay.results import ActionStatus
from roundplay.webhooks.client import WebhookClient
from roundplay.webhooks.dispatcher import WebhookDispatcher


class BrokenSeedProvider:
    def next(self):
        raise RuntimeError("entropy source down")


class UnreachableEligibility:
    def is_eligible(self, participant_id, external_id=None):
        raise RuntimeError("balance service unreachable")


def pick_config(**overrides):
    config = {
        "range": {"min": 1, "max": 10},
        "winner_count": 1,
        "min_participants": 2,
        "max_participants": 10,
        "auto_start": False,
    }
    config.update(overrides)
    return config


class EngineTestCase(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.game = self.make_engine()

    def create_pick(self, **overrides):
        return self.game.create_session(
            "number_pick", pick_config(**overrides), scope="chat-1", created_by="admin"
        ).id

    def join_players(self, session_id, count, start=1):
        ids = []
        for n in range(start, start + count):
            result = self.game.join(session_id, ParticipantRef(f"user_{n}", f"Player {n}"))
            self.assertTrue(result.ok, result.status)
            ids.append(result.participant_id)
        return ids

    def phase(self, session_id):
        return self.game.get_session_state(session_id).phase

    def race(self, *calls):
        """Run ``calls`` on separate threads released together; return their results."""
        results = [None] * len(calls)
        barrier = threading.Barrier(len(calls))

        def worker(index, call):
            barrier.wait()
            results[index] = call()

        threads = [
            threading.Thread(target=worker, args=(index, call))
            for index, call in enumerate(calls)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def event_count(self, session_id, kind):
        with self.Session() as db:
            return db.scalar(
                select(func.count(OutcomeEvent.id)).where(
                    OutcomeEvent.session_id == session_id, OutcomeEvent.kind == kind
                )
            )

    def session_fields(self, session_id):
        data = dict(self.game.get_session_state(session_id).session)
        data.pop("id")
        return data



class TestSessionLifecycle(EngineTestCase):
    def test_create_opens_lobby_with_join_timer(self):
        session_id = self.create_pick()
        snapshot = self.game.get_session_state(session_id)
        self.assertEqual(snapshot.phase, "lobby")
        self.assertEqual(snapshot.session["lobby_status"], "waiting_for_minimum")
        self.assertEqual(snapshot.session["scope"], "chat-1")
        self.assertEqual(self.scheduler.delay_for(session_id), 60)
        with self.Session() as db:
            kinds = db.scalars(
                select(OutcomeEvent.kind).where(OutcomeEvent.session_id == session_id)
            ).all()
        self.assertEqual(kinds, ["created"])

    def test_invalid_configuration_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.create_pick(range={"min": 10, "max": 1})
        with self.assertRaises(ValidationError):
            self.game.create_session("bingo", {}, scope="chat-1", created_by="admin")
        with self.assertRaises(ValidationError):
            self.game.create_session("number_pick", pick_config(), scope="", created_by="admin")

    def test_join_counts_and_capacity(self):
        session_id = self.create_pick(max_participants=3)
        self.join_players(session_id, 3)
        result = self.game.join(session_id, ParticipantRef("user_4"))
        self.assertEqual(result.status, ActionStatus.FULL)
        snapshot = self.game.get_session_state(session_id)
        self.assertEqual(snapshot.participant_count, 3)
        self.assertEqual(len(snapshot.participants), 3)

    def test_concurrent_joins_never_exceed_capacity(self):
        session_id = self.create_pick(max_participants=3)
        results = []
        barrier = threading.Barrier(6)

        def worker(n):
            barrier.wait()
            results.append(self.game.join(session_id, ParticipantRef(f"racer_{n}")))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        statuses = [r.status for r in results]
        self.assertEqual(statuses.count(ActionStatus.OK), 3)
        self.assertEqual(statuses.count(ActionStatus.FULL), 3)
        with self.Session() as db:
            count = db.scalar(
                select(func.count(Enrollment.id)).where(Enrollment.session_id == session_id)
            )
        self.assertEqual(count, 3)

    def test_join_twice_and_unknown_session(self):
        session_id = self.create_pick()
        self.join_players(session_id, 1)
        again = self.game.join(session_id, ParticipantRef("user_1"))
        self.assertEqual(again.status, ActionStatus.ALREADY_JOINED)
        missing = self.game.join("nope", ParticipantRef("user_1"))
        self.assertEqual(missing.status, ActionStatus.SESSION_NOT_FOUND)

    def test_participant_is_shared_across_sessions(self):
        first = self.create_pick()
        second = self.create_pick()
        a = self.game.join(first, ParticipantRef("user_1", "Alice"))
        b = self.game.join(second, ParticipantRef("user_1", "Alice"))
        self.assertEqual(a.participant_id, b.participant_id)
        with self.Session() as db:
            participant = db.get(Participant, a.participant_id)
            self.assertEqual(participant.sessions_played, 2)
            self.assertEqual(participant.display_name, "Alice")

    def test_start_is_applied_once(self):
        session_id = self.create_pick()
        self.join_players(session_id, 2)
        first = self.game.start(session_id)
        second = self.game.start(session_id)
        self.assertTrue(first.applied)
        self.assertEqual(first.phase, "active")
        self.assertFalse(second.applied)
        self.assertEqual(second.phase, "active")
        self.assertEqual(self.scheduler.delay_for(session_id), 300)

    def test_admin_start_races_join_timeout(self):
        reference = self.create_pick()
        raced = self.create_pick()
        for session_id in (reference, raced):
            self.join_players(session_id, 2)
        self.clock.advance(seconds=61)
        self.game.handle_deadline(reference)
        self.game.start(reference)

        started, timed_out = self.race(
            lambda: self.game.start(raced), lambda: self.game.handle_deadline(raced)
        )
        self.assertEqual([started.applied, timed_out.applied].count(True), 1)
        self.assertEqual((started.phase, timed_out.phase), ("active", "active"))
        self.assertEqual(self.event_count(raced, "started"), 1)
        self.assertEqual(self.session_fields(raced), self.session_fields(reference))

    def test_start_needs_minimum_participants(self):
        session_id = self.create_pick(min_participants=3)
        self.join_players(session_id, 2)
        result = self.game.start(session_id)
        self.assertFalse(result.applied)
        self.assertEqual(self.phase(session_id), "lobby")

    def test_auto_start_when_minimum_reached(self):
        session_id = self.create_pick(auto_start=True, min_participants=2)
        self.join_players(session_id, 1)
        self.assertEqual(self.phase(session_id), "lobby")
        self.join_players(session_id, 1, start=2)
        self.assertEqual(self.phase(session_id), "active")
        late = self.game.join(session_id, ParticipantRef("user_3"))
        self.assertEqual(late.status, ActionStatus.SESSION_NOT_JOINABLE)

    def test_cancel_is_terminal(self):
        session_id = self.create_pick()
        first = self.game.cancel(session_id)
        second = self.game.cancel(session_id)
        self.assertTrue(first.applied)
        self.assertFalse(second.applied)
        snapshot = self.game.get_session_state(session_id)
        self.assertEqual(snapshot.phase, "cancelled")
        self.assertEqual(snapshot.session["cancel_reason"], "cancelled by admin")
        self.assertIn(session_id, self.scheduler.cancelled)
        self.assertFalse(self.game.start(session_id).applied)

    def test_terminal_sessions_release_their_lock(self):
        session_id = self.create_pick()
        self.join_players(session_id, 2)
        self.assertIn(session_id, self.game._locks)
        self.game.cancel(session_id)
        self.assertNotIn(session_id, self.game._locks)


class TestNumberPick(EngineTestCase):
    def test_direct_draw_scenario(self):
        self.game = self.make_engine(seed_provider=FixedRandomProvider(ScriptedRandom(samples=[[7]])))
        session_id = self.create_pick(prizes={"pool": 1000})
        players = self.join_players(session_id, 3)
        self.game.start(session_id)
        for pid, number in zip(players, (3, 7, 9)):
            self.clock.advance(seconds=1)
            self.assertTrue(self.game.submit_claim(session_id, pid, number).ok)

        snapshot = self.game.get_session_state(session_id)
        self.assertEqual(snapshot.phase, "completed")
        self.assertEqual(len(snapshot.winners), 1)
        winner = snapshot.winners[0]
        self.assertEqual(winner["participant_id"], players[1])
        self.assertEqual(winner["claim"], 7)
        self.assertEqual(winner["prize_position"], 1)
        self.assertEqual(winner["prize_share"], 100.0)
        self.assertEqual(winner["payout"], 1000.0)
        with self.Session() as db:
            self.assertEqual(db.get(Participant, players[1]).sessions_won, 1)
            self.assertEqual(db.get(Participant, players[0]).sessions_won, 0)
        self.assertNotIn(session_id, self.scheduler.scheduled)
        self.assertNotIn(session_id, self.game._locks)

    def test_reverse_elimination_scenario(self):
        self.game = self.make_engine(
            seed_provider=FixedRandomProvider(ScriptedRandom(choices=[3, 1, 5]))
        )
        session_id = self.create_pick(reverse_mode=True, winner_count=2)
        players = self.join_players(session_id, 5)
        self.game.start(session_id)
        for pid, number in zip(players, (1, 2, 3, 4, 5)):
            self.clock.advance(seconds=1)
            self.game.submit_claim(session_id, pid, number)

        snapshot = self.game.get_session_state(session_id)
        self.assertEqual(snapshot.phase, "completed")
        self.assertEqual({w["claim"] for w in snapshot.winners}, {2, 4})
        eliminated = {p["claim"]: p["eliminated_at_draw"] for p in snapshot.participants}
        self.assertEqual(eliminated, {3: 1, 1: 2, 5: 3, 2: None, 4: None})
        shares = sorted(w["prize_share"] for w in snapshot.winners)
        self.assertAlmostEqual(sum(shares), 100.0, places=2)

    def test_claim_rejections(self):
        session_id = self.create_pick(reserved_numbers=[5])
        players = self.join_players(session_id, 3)

        early = self.game.submit_claim(session_id, players[0], 3)
        self.assertEqual(early.status, ActionStatus.WRONG_PHASE)

        self.game.start(session_id)
        self.assertEqual(
            self.game.submit_claim(session_id, players[0], 11).status, ActionStatus.OUT_OF_RANGE
        )
        self.assertEqual(
            self.game.submit_claim(session_id, players[0], 5).status, ActionStatus.ALREADY_CLAIMED
        )
        self.assertTrue(self.game.submit_claim(session_id, players[0], 3).ok)
        self.assertEqual(
            self.game.submit_claim(session_id, players[1], 3).status, ActionStatus.ALREADY_CLAIMED
        )
        self.assertEqual(
            self.game.submit_claim(session_id, players[0], 4).status,
            ActionStatus.ALREADY_SUBMITTED,
        )
        self.assertEqual(
            self.game.submit_claim(session_id, 9999, 4).status, ActionStatus.NOT_ENROLLED
        )
        self.assertEqual(
            self.game.submit_claim("nope", players[0], 4).status, ActionStatus.SESSION_NOT_FOUND
        )
        self.assertEqual(
            self.game.available_numbers(session_id), frozenset({1, 2, 4, 6, 7, 8, 9, 10})
        )

    def test_available_numbers_follow_claims(self):
        session_id = self.create_pick()
        players = self.join_players(session_id, 3)
        self.game.start(session_id)
        self.assertEqual(self.game.available_numbers(session_id), frozenset(range(1, 11)))
        self.game.submit_claim(session_id, players[0], 2)
        available = self.game.available_numbers(session_id)
        self.assertNotIn(2, available)
        self.assertEqual(len(available), 9)
        self.assertEqual(
            self.game.get_session_state(session_id).available_numbers,
            tuple(sorted(available)),
        )

    def test_duplicate_claims_allowed(self):
        session_id = self.create_pick(allow_duplicate_claims=True)
        players = self.join_players(session_id, 3)
        self.game.start(session_id)
        self.assertTrue(self.game.submit_claim(session_id, players[0], 4).ok)
        self.assertTrue(self.game.submit_claim(session_id, players[1], 4).ok)
        self.assertIn(4, self.game.available_numbers(session_id))

    def test_deadline_resolves_partial_claims(self):
        session_id = self.create_pick()
        players = self.join_players(session_id, 3)
        self.game.start(session_id)
        self.game.submit_claim(session_id, players[2], 8)

        self.clock.advance(seconds=10)
        self.assertFalse(self.game.handle_deadline(session_id).applied)

        self.clock.advance(seconds=300)
        result = self.scheduler.fire(session_id)
        self.assertTrue(result.applied)
        snapshot = self.game.get_session_state(session_id)
        self.assertEqual(snapshot.phase, "completed")
        self.assertEqual([w["participant_id"] for w in snapshot.winners], [players[2]])

    def test_final_claim_races_selection_deadline(self):
        self.game = self.make_engine(
            seed_provider=FixedRandomProvider(ScriptedRandom(samples=[[3]]))
        )
        session_id = self.create_pick()
        first, last = self.join_players(session_id, 2)
        self.game.start(session_id)
        self.game.submit_claim(session_id, first, 3)
        self.clock.advance(seconds=301)

        claimed, timed_out = self.race(
            lambda: self.game.submit_claim(session_id, last, 7),
            lambda: self.game.handle_deadline(session_id),
        )
        # Whichever call got the lock first resolved the session.
        self.assertNotEqual(claimed.ok, timed_out.applied)
        if not claimed.ok:
            self.assertEqual(claimed.status, ActionStatus.WRONG_PHASE)
        self.assertEqual(timed_out.phase, "completed")
        self.assertEqual(self.event_count(session_id, "resolved"), 1)

        snapshot = self.game.get_session_state(session_id)
        self.assertEqual(snapshot.phase, "completed")
        self.assertEqual(snapshot.session["resolved_at"], self.clock().isoformat())
        self.assertEqual(
            [(w["participant_id"], w["claim"], w["prize_share"]) for w in snapshot.winners],
            [(first, 3, 100.0)],
        )

    def test_no_claims_cancels_and_releases(self):
        session_id = self.create_pick()
        self.join_players(session_id, 2)
        self.game.start(session_id)
        self.clock.advance(seconds=301)
        result = self.game.handle_deadline(session_id)
        self.assertEqual(result.phase, "cancelled")
        snapshot = self.game.get_session_state(session_id)
        self.assertEqual(snapshot.session["cancel_reason"], "no participant submitted")
        self.assertEqual(snapshot.winners, ())

    def test_cancel_releases_claims(self):
        session_id = self.create_pick()
        players = self.join_players(session_id, 3)
        self.game.start(session_id)
        self.game.submit_claim(session_id, players[0], 6)
        self.game.cancel(session_id, reason="stopped")
        with self.Session() as db:
            self.assertEqual(Claim.for_session(db, session_id), [])
        self.assertEqual(
            self.game.submit_claim(session_id, players[1], 7).status, ActionStatus.WRONG_PHASE
        )

    def test_failed_selection_cancels_session(self):
        self.game = self.make_engine(seed_provider=BrokenSeedProvider())
        session_id = self.create_pick()
        players = self.join_players(session_id, 2)
        self.game.start(session_id)
        self.game.submit_claim(session_id, players[0], 1)
        with self.assertRaises(RuntimeError):
            self.game.submit_claim(session_id, players[1], 2)
        snapshot = self.game.get_session_state(session_id)
        self.assertEqual(snapshot.phase, "cancelled")
        self.assertTrue(snapshot.session["cancel_reason"].startswith("resolution failed"))


class TestLobbyDeadline(EngineTestCase):
    def test_cancels_without_enough_players(self):
        session_id = self.create_pick(min_participants=2)
        self.join_players(session_id, 1)
        self.clock.advance(seconds=30)
        self.assertFalse(self.game.handle_deadline(session_id).applied)
        self.clock.advance(seconds=31)
        result = self.game.handle_deadline(session_id)
        self.assertTrue(result.applied)
        snapshot = self.game.get_session_state(session_id)
        self.assertEqual(snapshot.phase, "cancelled")
        self.assertEqual(snapshot.session["cancel_reason"], "not enough participants joined")

    def test_starts_with_enough_players(self):
        session_id = self.create_pick(min_participants=2)
        self.join_players(session_id, 2)
        self.clock.advance(seconds=61)
        result = self.scheduler.fire(session_id)
        self.assertTrue(result.applied)
        self.assertEqual(self.phase(session_id), "active")
        self.assertEqual(self.scheduler.delay_for(session_id), 300)

    def test_due_sessions_and_resume(self):
        session_id = self.create_pick()
        self.assertEqual(self.repository.due_session_ids(self.clock()), [])
        self.clock.advance(seconds=61)
        self.assertEqual(self.repository.due_session_ids(self.clock()), [session_id])

        self.scheduler.scheduled.clear()
        restarted = self.make_engine()
        self.assertEqual(restarted.resume_timers(), 1)
        self.assertEqual(self.scheduler.delay_for(session_id), 0.0)

    def test_resume_finishes_interrupted_resolutions(self):
        claimed = self.create_pick()
        players = self.join_players(claimed, 2)
        silent = self.create_pick()
        self.join_players(silent, 2, start=3)
        for session_id in (claimed, silent):
            self.game.start(session_id)
        self.assertTrue(self.game.submit_claim(claimed, players[0], 3).ok)
        with self.Session() as db:
            for session_id in (claimed, silent):
                game = db.get(GameSession, session_id)
                game.phase = "resolving"
                game.phase_deadline = None
            db.commit()

        self.scheduler.scheduled.clear()
        restarted = self.make_engine()
        self.assertEqual(restarted.resume_timers(), 0)
        self.assertEqual(self.phase(claimed), "completed")
        self.assertEqual(self.phase(silent), "cancelled")
        winners = self.game.get_session_state(claimed).winners
        self.assertEqual([(w["participant_id"], w["claim"]) for w in winners], [(players[0], 3)])
        self.assertEqual(restarted.resume_resolutions(), [])


class TestQuiz(EngineTestCase):
    def create_quiz(self, **overrides):
        config = {
            "question_count": 2,
            "seconds_per_question": 15,
            "min_participants": 2,
            "max_participants": 10,
            "winner_count": 1,
            "auto_start": False,
        }
        config.update(overrides)
        return self.game.create_session("quiz", config, scope="chat-q", created_by="admin").id

    def test_answer_points(self):
        self.assertEqual(answer_points(True, 0), 150)
        self.assertEqual(answer_points(True, 1000), 145)
        self.assertEqual(answer_points(True, 20000), 100)
        self.assertEqual(answer_points(False, 0), 0)

    def test_quiz_needs_question_provider(self):
        self.game = self.make_engine(questions=None)
        with self.assertRaises(ValidationError):
            self.create_quiz()

    def test_full_quiz_round(self):
        session_id = self.create_quiz()
        alice, bob = self.join_players(session_id, 2)
        self.game.start(session_id)
        snapshot = self.game.get_session_state(session_id)
        self.assertEqual(snapshot.session["current_question"], 0)
        self.assertNotIn("correct_index", snapshot.current_question)
        self.assertEqual(self.scheduler.delay_for(session_id), 15)

        # Question 0: correct index is 0.
        self.clock.advance(seconds=1)
        self.assertEqual(
            self.game.submit_answer(session_id, alice, 0, 9).status, ActionStatus.INVALID_ANSWER
        )
        first = self.game.submit_answer(session_id, alice, 0, 0)
        self.assertTrue(first.ok)
        self.assertTrue(first.correct)
        self.assertEqual(
            self.game.submit_answer(session_id, alice, 0, 0).status,
            ActionStatus.ALREADY_ANSWERED,
        )
        self.assertEqual(
            self.game.submit_answer(session_id, bob, 1, 0).status, ActionStatus.WRONG_PHASE
        )
        wrong = self.game.submit_answer(session_id, bob, 0, 2)
        self.assertFalse(wrong.correct)
        self.assertEqual(wrong.correct_index, 0)

        # Everyone answered: question 1 is open now.
        self.assertEqual(self.game.get_session_state(session_id).session["current_question"], 1)
        self.assertEqual(
            self.game.submit_answer(session_id, alice, 0, 0).status, ActionStatus.TOO_LATE
        )

        # Question 1: correct index is 1.
        self.game.submit_answer(session_id, alice, 1, 1)
        self.game.submit_answer(session_id, bob, 1, 1)

        snapshot = self.game.get_session_state(session_id)
        self.assertEqual(snapshot.phase, "completed")
        self.assertEqual([w["participant_id"] for w in snapshot.winners], [alice])

        board = self.game.leaderboard(session_id)
        self.assertEqual([row["participant_id"] for row in board], [alice, bob])
        self.assertEqual(board[0]["score"], 145 + 150)
        self.assertEqual(board[0]["correct_answers"], 2)
        self.assertEqual(board[1]["score"], 150)
        self.assertEqual(
            self.game.submit_answer(session_id, bob, 1, 1).status, ActionStatus.TOO_LATE
        )

    def test_question_deadline_advances_and_resolves(self):
        session_id = self.create_quiz()
        alice, _ = self.join_players(session_id, 2)
        self.game.start(session_id)
        self.game.submit_answer(session_id, alice, 0, 0)

        self.clock.advance(seconds=16)
        self.assertTrue(self.scheduler.fire(session_id).applied)
        self.assertEqual(self.game.get_session_state(session_id).session["current_question"], 1)

        self.clock.advance(seconds=16)
        result = self.scheduler.fire(session_id)
        self.assertEqual(result.phase, "completed")
        winners = self.game.get_session_state(session_id).winners
        self.assertEqual([w["participant_id"] for w in winners], [alice])

    def test_nobody_answers_cancels(self):
        session_id = self.create_quiz(question_count=1)
        self.join_players(session_id, 2)
        self.game.start(session_id)
        self.clock.advance(seconds=16)
        result = self.game.handle_deadline(session_id)
        self.assertEqual(result.phase, "cancelled")

    def test_eligibility_gate(self):
        self.game = self.make_engine(eligibility=StaticEligibilityProvider(["user_1"]))
        session_id = self.create_quiz(requires_eligibility_check=True)
        self.assertTrue(self.game.join(session_id, ParticipantRef("user_1")).ok)
        refused = self.game.join(session_id, ParticipantRef("user_2"))
        self.assertEqual(refused.status, ActionStatus.NOT_ELIGIBLE)
        self.assertEqual(self.game.get_session_state(session_id).participant_count, 1)

    def test_failing_eligibility_check_refuses_join(self):
        self.game = self.make_engine(eligibility=UnreachableEligibility())
        session_id = self.create_quiz(requires_eligibility_check=True)
        with self.assertLogs("roundplay.engine", level="WARNING"):
            refused = self.game.join(session_id, ParticipantRef("user_1"))
        self.assertEqual(refused.status, ActionStatus.NOT_ELIGIBLE)
        self.assertEqual(self.game.get_session_state(session_id).participant_count, 0)

    def test_category_questions_are_used(self):
        bank = question_bank(3) + question_bank(2, category="science")
        self.game = self.make_engine(questions=StaticQuestionProvider(bank))
        session_id = self.create_quiz(categories=["science"])
        with self.Session() as db:
            game = db.get(GameSession, session_id)
            self.assertEqual({q.category for q in game.questions}, {"science"})

    def test_leaderboard_for_other_kinds(self):
        self.assertIsNone(self.game.leaderboard("nope"))
        session_id = self.game.create_session(
            "number_pick", pick_config(), scope="chat-1", created_by="admin"
        ).id
        self.assertEqual(self.game.leaderboard(session_id), [])


class TestEngineWebhooks(EngineTestCase):
    def test_lifecycle_events_are_delivered(self):
        http = DummySession(200)
        dispatcher = WebhookDispatcher(
            self.repository,
            WebhookSettings(enabled=True, default_url="https://hooks.example.com/game"),
            client=WebhookClient(session=http),
            sleep=lambda seconds: None,
            clock=self.clock,
        )
        self.game = self.make_engine(
            dispatcher=dispatcher,
            seed_provider=FixedRandomProvider(ScriptedRandom(samples=[[4]])),
        )
        session_id = self.create_pick()
        players = self.join_players(session_id, 2)
        self.game.start(session_id)
        self.game.submit_claim(session_id, players[0], 4)
        self.game.submit_claim(session_id, players[1], 5)

        events = [call["headers"]["X-Webhook-Event"] for call in http.calls]
        self.assertEqual(
            events,
            [
                "session.created",
                "player.joined",
                "player.joined",
                "session.started",
                "number.claimed",
                "number.claimed",
                "winner.selected",
                "session.ended",
            ],
        )
        ended = http.sent_envelopes()[-1]["data"]
        self.assertEqual(ended["session"]["id"], session_id)
        self.assertEqual(ended["session"]["phase"], "completed")
        self.assertEqual([w["claim"] for w in ended["winners"]], [4])
        self.assertEqual(ended["awards"][0]["prize_share"], 100.0)
        self.assertEqual(dispatcher.stats()["success"], 8)


if __name__ == "__main__":
    unittest.main()
