# progress_store.py
import datetime
import json
import logging
import os
import pathlib
import tempfile
import threading
import uuid
from typing import Callable, Dict, List, Optional

import config

logger = logging.getLogger(__name__)


class ProgressError(Exception):
    status_code = 500


class MissingFieldsError(ProgressError):
    status_code = 400


class UserNotFoundError(ProgressError):
    status_code = 404


class ProgressFileError(ProgressError):
    """The progress file exists but could not be parsed; writes are refused."""
    status_code = 500


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# ---------- Normalization ----------
def _normalize_record(raw: Dict) -> Optional[Dict]:
    """Coerce a stored progress record into the current shape.

    Records missing their key fields are dropped.
    """
    if not isinstance(raw, dict):
        return None
    difficulty = (raw.get("difficulty") or "").strip()
    region = (raw.get("region") or "").strip()
    if not difficulty or not region:
        return None
    try:
        attempts = max(0, int(raw.get("attempts", 0)))
        correct = max(0, int(raw.get("correct_answers", 0)))
        score = max(0, int(raw.get("score", 0)))
    except (TypeError, ValueError):
        attempts, correct, score = 0, 0, 0
    created = raw.get("created_at") or raw.get("updated_at") or _now().isoformat()
    return {
        "id": raw.get("id") or uuid.uuid4().hex,
        "difficulty": difficulty,
        "region": region,
        "attempts": attempts,
        "correct_answers": min(correct, attempts),
        "score": score,
        "created_at": created,
        "updated_at": raw.get("updated_at") or created,
    }


def _normalize_users(raw_users: Dict) -> Dict[str, Dict]:
    users: Dict[str, Dict] = {}
    for email, payload in (raw_users or {}).items():
        payload = payload or {}
        records = [_normalize_record(r) for r in payload.get("progress", []) or []]
        users[email] = {
            "id": payload.get("id") or uuid.uuid4().hex,
            "name": (payload.get("name") or email).strip(),
            "progress": [r for r in records if r],
        }
    return users


# ---------- Store ----------
class ProgressStore:
    """Players and their per-(difficulty, region) progress, kept in one JSON file.

    Schema:
    {
      "users": {"ada@example.com": {"id": ..., "name": "Ada", "progress": [...]}},
      "active_user": "ada@example.com"
    }
    """

    def __init__(
        self,
        path: pathlib.Path = config.PROGRESS_FILE,
        clock: Callable[[], datetime.datetime] = _now,
        points_per_correct: int = config.POINTS_PER_CORRECT,
    ):
        self.path = pathlib.Path(path)
        self._clock = clock
        self.points_per_correct = points_per_correct
        self._lock = threading.RLock()

    def _empty(self) -> Dict:
        return {"users": {}, "active_user": None}

    def _read(self) -> Dict:
        """Parse the progress file. Raises ProgressFileError if it exists but is unreadable."""
        if not self.path.exists():
            return self._empty()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, ValueError) as e:
            raise ProgressFileError(f"Could not read progress file {self.path}: {e}") from e
        if not isinstance(raw, dict):
            raise ProgressFileError(f"Progress file {self.path} is not a JSON object")
        users = _normalize_users(raw.get("users", {}))
        active = raw.get("active_user")
        if active not in users:
            active = None
        return {"users": users, "active_user": active}

    def _write(self, state: Dict) -> None:
        data = {
            "users": _normalize_users(state.get("users", {})),
            "active_user": state.get("active_user"),
        }
        # Write beside the target and swap it in so readers never see a partial file
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def load(self) -> Dict:
        """Current players and progress; an unreadable file reads as empty."""
        with self._lock:
            try:
                return self._read()
            except ProgressFileError as e:
                logger.error(str(e))
                return self._empty()

    def save(self, state: Dict) -> None:
        with self._lock:
            self._write(state)

    # ---------- Players ----------
    def register_user(self, email: str, name: str = "") -> Dict:
        email = (email or "").strip().lower()
        if not email:
            raise MissingFieldsError("Email is required")
        with self._lock:
            state = self._read()
            user = state["users"].get(email)
            if user is None:
                user = {"id": uuid.uuid4().hex, "name": (name or email).strip(), "progress": []}
                state["users"][email] = user
                logger.info(f"Registered player {email}")
            state["active_user"] = email
            self._write(state)
        return {"email": email, "id": user["id"], "name": user["name"]}

    def list_users(self) -> List[Dict]:
        users = self.load()["users"]
        return [{"email": e, "id": u["id"], "name": u["name"]} for e, u in users.items()]

    def active_user(self) -> Optional[str]:
        return self.load()["active_user"]

    def set_active_user(self, email: Optional[str]) -> None:
        with self._lock:
            state = self._read()
            state["active_user"] = email if email in state["users"] else None
            self._write(state)

    # ---------- Progress ----------
    def record_answer(self, email: str, difficulty: str, region: str, is_correct: bool) -> Dict:
        """Find-or-create the (user, difficulty, region) record and count one answer."""
        email = (email or "").strip().lower()
        difficulty = (difficulty or "").strip()
        region = (region or "").strip()
        if not email or not difficulty or not region:
            raise MissingFieldsError("Missing required fields")

        with self._lock:
            state = self._read()
            user = state["users"].get(email)
            if user is None:
                raise UserNotFoundError(f"User not found: {email}")

            now = self._clock().isoformat()
            record = next(
                (r for r in user["progress"] if r["difficulty"] == difficulty and r["region"] == region),
                None,
            )
            if record is None:
                record = {
                    "id": uuid.uuid4().hex,
                    "difficulty": difficulty,
                    "region": region,
                    "attempts": 0,
                    "correct_answers": 0,
                    "score": 0,
                    "created_at": now,
                    "updated_at": now,
                }
                user["progress"].append(record)

            record["attempts"] += 1
            if is_correct:
                record["correct_answers"] += 1
                record["score"] += self.points_per_correct
            record["updated_at"] = now
            self._write(state)
        return dict(record, user_id=user["id"])

    def list_progress(self, email: str) -> List[Dict]:
        """All of a player's records, most recently updated first."""
        email = (email or "").strip().lower()
        if not email:
            raise MissingFieldsError("Email is required")
        user = self.load()["users"].get(email)
        if user is None:
            raise UserNotFoundError(f"User not found: {email}")
        records = [dict(r, user_id=user["id"]) for r in user["progress"]]
        return sorted(records, key=lambda r: r["updated_at"], reverse=True)

    def reset_progress(self, email: str) -> None:
        email = (email or "").strip().lower()
        with self._lock:
            state = self._read()
            user = state["users"].get(email)
            if user is None:
                raise UserNotFoundError(f"User not found: {email}")
            user["progress"] = []
            self._write(state)


def compute_users_leaderboard(store: ProgressStore) -> List[Dict]:
    """Leaderboard rows across players.

    Returns dicts with keys {name, email, score, correct, attempts, accuracy},
    sorted by score desc, then correct desc, then accuracy desc, then name.
    """
    rows = []
    for email, user in store.load()["users"].items():
        score = sum(r["score"] for r in user["progress"])
        correct = sum(r["correct_answers"] for r in user["progress"])
        attempts = sum(r["attempts"] for r in user["progress"])
        accuracy = int(round((correct / attempts) * 100)) if attempts else 0
        rows.append({
            "name": user["name"],
            "email": email,
            "score": score,
            "correct": correct,
            "attempts": attempts,
            "accuracy": accuracy,
        })
    rows.sort(key=lambda r: (-r["score"], -r["correct"], -r["accuracy"], r["name"]))
    return rows


class ProgressReporter:
    """Best-effort answer reporting for one signed-in game.

    Each answer is written on a daemon thread so a slow disk never holds up the
    game; failures are logged and dropped.
    """

    def __init__(self, store: ProgressStore, email: str, region: str,
                 difficulty: str = config.DEFAULT_DIFFICULTY, background: bool = True):
        self.store = store
        self.email = email
        self.region = region
        self.difficulty = difficulty
        self.background = background
        self._threads: List[threading.Thread] = []

    def __call__(self, is_correct: bool) -> None:
        if not self.background:
            self._send(is_correct)
            return
        thread = threading.Thread(target=self._send, args=(is_correct,), daemon=True)
        self._threads = [t for t in self._threads if t.is_alive()]
        self._threads.append(thread)
        thread.start()

    def _send(self, is_correct: bool) -> None:
        try:
            self.store.record_answer(self.email, self.difficulty, self.region, is_correct)
        except ProgressError as e:
            logger.warning(f"Progress not saved for {self.email} ({e.status_code}): {e}")
        except OSError as e:
            logger.warning(f"Progress not saved for {self.email}: {e}")

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding writes."""
        for thread in self._threads:
            thread.join(timeout)
        self._threads = [t for t in self._threads if t.is_alive()]
