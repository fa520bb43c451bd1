"""
Behavior Store - SQLite-backed persistence for learned behavior and run history.

Features:
- Upsert and load per-user behavior models
- Archive finished executions with their plan and outputs
- Query execution history by session
"""

import logging
from pathlib import Path
from typing import Optional

import aiosqlite

from ..exceptions import StoreError
from .models import ExecutionState, UserBehaviorModel

logger = logging.getLogger(__name__)


class BehaviorStore:
	"""
	SQLite-backed store for behavior models and execution history.

	Usage:
		store = BehaviorStore("data/behavior.db")
		await store.init()

		await store.save_model(model)
		model = await store.get_model("alice")

		await store.save_execution(state)
		runs = await store.list_executions(session_id="s-1")
	"""

	def __init__(self, db_path: str):
		"""Initialize the behavior store."""
		self.db_path = Path(db_path)
		self.db_path.parent.mkdir(parents=True, exist_ok=True)
		self._db: Optional[aiosqlite.Connection] = None

	async def init(self):
		"""Initialize the database schema."""
		try:
			self._db = await aiosqlite.connect(str(self.db_path))
			self._db.row_factory = aiosqlite.Row

			await self._db.execute("""
				CREATE TABLE IF NOT EXISTS behavior_models (
					user_id TEXT PRIMARY KEY,
					data TEXT NOT NULL,
					updated_at TEXT NOT NULL
				)
			""")

			await self._db.execute("""
				CREATE TABLE IF NOT EXISTS execution_history (
					id INTEGER PRIMARY KEY AUTOINCREMENT,
					plan_id TEXT NOT NULL,
					session_id TEXT NOT NULL,
					user_id TEXT NOT NULL,
					status TEXT NOT NULL,
					data TEXT NOT NULL,
					started_at TEXT NOT NULL,
					finished_at TEXT
				)
			""")

			await self._db.execute("""
				CREATE INDEX IF NOT EXISTS idx_history_session ON execution_history(session_id)
			""")

			await self._db.commit()
		except aiosqlite.Error as e:
			raise StoreError(f"Failed to initialize behavior store at {self.db_path}: {e}") from e

		logger.info(f"Behavior store initialized: {self.db_path}")

	async def close(self):
		"""Close the database connection."""
		if self._db:
			await self._db.close()
			self._db = None

	async def _conn(self) -> aiosqlite.Connection:
		if not self._db:
			await self.init()
		return self._db

	async def save_model(self, model: UserBehaviorModel) -> None:
		"""Insert or replace a user's behavior model."""
		db = await self._conn()
		try:
			await db.execute(
				"""
				INSERT INTO behavior_models (user_id, data, updated_at)
				VALUES (?, ?, ?)
				ON CONFLICT(user_id) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
				""",
				(model.user_id, model.model_dump_json(), model.last_updated),
			)
			await db.commit()
		except aiosqlite.Error as e:
			raise StoreError(f"Failed to save behavior model for {model.user_id}: {e}") from e

		logger.debug(f"Saved behavior model for {model.user_id}")

	async def get_model(self, user_id: str) -> Optional[UserBehaviorModel]:
		"""Load a user's behavior model, or None if there is none."""
		db = await self._conn()
		try:
			async with db.execute(
				"SELECT data FROM behavior_models WHERE user_id = ?",
				(user_id,)
			) as cursor:
				row = await cursor.fetchone()
		except aiosqlite.Error as e:
			raise StoreError(f"Failed to load behavior model for {user_id}: {e}") from e

		if not row:
			return None
		return UserBehaviorModel.model_validate_json(row["data"])

	async def list_models(self) -> list[UserBehaviorModel]:
		"""Every stored behavior model, most recently updated first."""
		db = await self._conn()
		try:
			async with db.execute(
				"SELECT data FROM behavior_models ORDER BY updated_at DESC"
			) as cursor:
				rows = await cursor.fetchall()
		except aiosqlite.Error as e:
			raise StoreError(f"Failed to list behavior models: {e}") from e

		return [UserBehaviorModel.model_validate_json(row["data"]) for row in rows]

	async def save_execution(self, state: ExecutionState) -> int:
		"""
		Archive a finished execution.

		Returns:
			Row id of the stored record
		"""
		db = await self._conn()
		try:
			cursor = await db.execute(
				"""
				INSERT INTO execution_history
					(plan_id, session_id, user_id, status, data, started_at, finished_at)
				VALUES (?, ?, ?, ?, ?, ?, ?)
				""",
				(
					state.plan.id,
					state.session_id,
					state.plan.context.user_id,
					state.status.value,
					state.model_dump_json(),
					state.started_at,
					state.finished_at,
				)
			)
			await db.commit()
		except aiosqlite.Error as e:
			raise StoreError(f"Failed to save execution {state.plan.id}: {e}") from e

		logger.debug(f"Archived execution {state.plan.id} ({state.status.value})")
		return cursor.lastrowid

	async def list_executions(
		self,
		session_id: Optional[str] = None,
		limit: int = 50,
	) -> list[ExecutionState]:
		"""
		Archived executions, newest first.

		Args:
			session_id: Only executions of this session
			limit: Maximum number of records
		"""
		db = await self._conn()
		query = "SELECT data FROM execution_history"
		params: list = []
		if session_id:
			query += " WHERE session_id = ?"
			params.append(session_id)
		query += " ORDER BY id DESC LIMIT ?"
		params.append(limit)

		try:
			async with db.execute(query, params) as cursor:
				rows = await cursor.fetchall()
		except aiosqlite.Error as e:
			raise StoreError(f"Failed to list executions: {e}") from e

		return [ExecutionState.model_validate_json(row["data"]) for row in rows]

