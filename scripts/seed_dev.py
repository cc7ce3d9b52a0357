"""Reset the development database and play one NumberPick round end to end."""

from __future__ import annotations

from roundplay.bootstrap import configure_logging
from roundplay.cache import SessionCache
from roundplay.config import load_settings
from roundplay.db.engine import get_sessionmaker, make_engine
from roundplay.engine import GameEngine
from roundplay.models import Base
from roundplay.providers import ParticipantRef, SeededRandomProvider
from roundplay.repository import GameRepository


class _NoTimers:
    """The seed script drives every transition itself."""

    def schedule(self, session_id, delay_seconds, callback) -> None:
        pass

    def cancel(self, session_id) -> None:
        pass

    def shutdown(self) -> None:
        pass


def main() -> None:
    """Seed the development database with a completed sample round."""
    settings = load_settings()
    configure_logging(settings.log_level)
    engine = make_engine(settings.database_url)
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    repository = GameRepository(get_sessionmaker(engine), SessionCache.from_settings(settings.cache))

    game_engine = GameEngine(
        repository,
        seed_provider=SeededRandomProvider("seed-dev"),
        scheduler=_NoTimers(),
        settings=settings,
    )
    snapshot = game_engine.create_session(
        "number_pick",
        {
            "range": {"min": 1, "max": 10},
            "winner_count": 1,
            "min_participants": 3,
            "max_participants": 10,
            "auto_start": False,
            "prizes": {"pool": 1000, "currency": "MWOR"},
        },
        scope="dev-chat",
        created_by="admin_01",
        title="Dev Lucky Draw",
    )
    session_id = snapshot.id

    players = []
    for external_id, name in (("user_01", "Alice"), ("user_02", "Bob"), ("user_03", "Carol")):
        result = game_engine.join(session_id, ParticipantRef(external_id, name))
        players.append(result.participant_id)

    game_engine.start(session_id)
    for participant_id, number in zip(players, (3, 7, 9)):
        game_engine.submit_claim(session_id, participant_id, number)

    final = game_engine.get_session_state(session_id)
    print(f"Session {session_id} finished in phase '{final.phase}'")
    for winner in final.winners:
        print(
            f"  winner {winner['display_name']} claimed {winner['claim']} "
            f"-> {winner['prize_share']}% ({winner['payout']})"
        )


if __name__ == "__main__":
    main()
