import datetime
import json
import threading

import pytest

from progress_store import (
    MissingFieldsError,
    ProgressFileError,
    ProgressReporter,
    ProgressStore,
    UserNotFoundError,
    compute_users_leaderboard,
)


class TickingClock:
    def __init__(self):
        self.now = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)

    def __call__(self):
        self.now += datetime.timedelta(seconds=1)
        return self.now


@pytest.fixture
def store(tmp_path):
    return ProgressStore(tmp_path / "progress.json", clock=TickingClock())


def test_record_answer_creates_then_increments(store):
    store.register_user("ada@example.com", "Ada")
    first = store.record_answer("ada@example.com", "easy", "northeast", True)
    assert first["attempts"] == 1
    assert first["correct_answers"] == 1
    assert first["score"] == 10
    assert first["region"] == "northeast"
    assert first["difficulty"] == "easy"

    second = store.record_answer("ada@example.com", "easy", "northeast", False)
    assert second["id"] == first["id"]
    assert second["attempts"] == 2
    assert second["correct_answers"] == 1
    assert second["score"] == 10


def test_records_are_keyed_by_difficulty_and_region(store):
    store.register_user("ada@example.com")
    store.record_answer("ada@example.com", "easy", "northeast", True)
    store.record_answer("ada@example.com", "easy", "west", True)
    store.record_answer("ada@example.com", "hard", "northeast", False)
    assert len(store.list_progress("ada@example.com")) == 3


def test_list_progress_most_recent_first(store):
    store.register_user("ada@example.com")
    store.record_answer("ada@example.com", "easy", "northeast", True)
    store.record_answer("ada@example.com", "easy", "west", True)
    store.record_answer("ada@example.com", "easy", "northeast", False)
    regions = [r["region"] for r in store.list_progress("ada@example.com")]
    assert regions == ["northeast", "west"]


@pytest.mark.parametrize("email, difficulty, region", [
    ("", "easy", "northeast"),
    ("ada@example.com", "", "northeast"),
    ("ada@example.com", "easy", ""),
])
def test_missing_fields_are_client_errors(store, email, difficulty, region):
    store.register_user("ada@example.com")
    with pytest.raises(MissingFieldsError) as exc:
        store.record_answer(email, difficulty, region, True)
    assert exc.value.status_code == 400


def test_unknown_user_is_not_found(store):
    with pytest.raises(UserNotFoundError) as exc:
        store.record_answer("ghost@example.com", "easy", "northeast", True)
    assert exc.value.status_code == 404
    with pytest.raises(UserNotFoundError):
        store.list_progress("ghost@example.com")
    with pytest.raises(MissingFieldsError):
        store.list_progress("")


def test_register_user_is_find_or_create(store):
    first = store.register_user("Ada@Example.com", "Ada")
    again = store.register_user("ada@example.com", "Someone else")
    assert first["id"] == again["id"]
    assert again["name"] == "Ada"
    assert store.active_user() == "ada@example.com"
    assert [u["email"] for u in store.list_users()] == ["ada@example.com"]


def test_store_survives_corrupt_records(tmp_path):
    path = tmp_path / "progress.json"
    path.write_text(json.dumps({
        "users": {
            "ada@example.com": {
                "name": "Ada",
                "progress": [
                    {"difficulty": "easy", "region": "west", "attempts": "3", "correct_answers": 5, "score": 20},
                    {"region": "west"},
                    "junk",
                ],
            },
        },
        "active_user": "nobody@example.com",
    }), encoding="utf-8")
    store = ProgressStore(path)
    records = store.list_progress("ada@example.com")
    assert len(records) == 1
    assert records[0]["attempts"] == 3
    assert records[0]["correct_answers"] == 3
    assert store.active_user() is None


def test_unreadable_file_starts_empty(tmp_path):
    path = tmp_path / "progress.json"
    path.write_text("{not json", encoding="utf-8")
    assert ProgressStore(path).load() == {"users": {}, "active_user": None}


def test_leaderboard_order(store):
    store.register_user("ada@example.com", "Ada")
    store.register_user("bob@example.com", "Bob")
    store.register_user("cy@example.com", "Cy")
    for ok in (True, True, False):
        store.record_answer("ada@example.com", "easy", "northeast", ok)
    for ok in (True, True):
        store.record_answer("bob@example.com", "easy", "west", ok)
    rows = compute_users_leaderboard(store)
    assert [r["name"] for r in rows] == ["Bob", "Ada", "Cy"]
    assert rows[0]["accuracy"] == 100
    assert rows[1] == {
        "name": "Ada", "email": "ada@example.com", "score": 20,
        "correct": 2, "attempts": 3, "accuracy": 67,
    }
    assert rows[2]["attempts"] == 0


def test_reporter_writes_in_background(store):
    store.register_user("ada@example.com")
    reporter = ProgressReporter(store, "ada@example.com", "southwest")
    reporter(True)
    reporter(False)
    reporter.join(timeout=5)
    [record] = store.list_progress("ada@example.com")
    assert record["attempts"] == 2
    assert record["difficulty"] == "easy"


def test_reporter_swallows_failures(store, caplog):
    reporter = ProgressReporter(store, "ghost@example.com", "west", background=False)
    reporter(True)
    assert "Progress not saved" in caplog.text


def test_reads_never_see_a_partial_file_while_reporters_write(tmp_path):
    store = ProgressStore(tmp_path / "progress.json")
    emails = [f"player{i}@example.com" for i in range(40)]
    for email in emails:
        store.register_user(email, email.split("@")[0])
    reporter = ProgressReporter(store, emails[0], "northeast")
    stop = threading.Event()

    def keep_writing():
        while not stop.is_set():
            reporter(True)
            reporter.join()

    writer = threading.Thread(target=keep_writing, daemon=True)
    writer.start()
    try:
        short_reads = 0
        for _ in range(500):
            if len(store.list_users()) != len(emails):
                short_reads += 1
    finally:
        stop.set()
        writer.join(timeout=10)
    assert short_reads == 0
    assert store.list_progress(emails[0])[0]["attempts"] >= 1
    assert not list(tmp_path.glob("*.tmp"))


def test_unreadable_file_is_not_overwritten(tmp_path):
    path = tmp_path / "progress.json"
    path.write_text("{not json", encoding="utf-8")
    store = ProgressStore(path)
    with pytest.raises(ProgressFileError):
        store.register_user("ada@example.com", "Ada")
    with pytest.raises(ProgressFileError):
        store.set_active_user(None)
    ProgressReporter(store, "ada@example.com", "west", background=False)(True)
    assert path.read_text(encoding="utf-8") == "{not json"


def test_reporter_drops_finished_threads(store):
    store.register_user("ada@example.com")
    reporter = ProgressReporter(store, "ada@example.com", "west")
    for _ in range(5):
        reporter(True)
        for thread in list(reporter._threads):
            thread.join(5)
    reporter(False)
    assert len(reporter._threads) == 1
    reporter.join(5)
    assert store.list_progress("ada@example.com")[0]["attempts"] == 6
