# =============================================================================
# AGENTFORGE - STATE MANAGER
# =============================================================================
"""
State Manager Module

This module holds the orchestrator's state model and the session store
it is persisted through. It enables the system to:
1. Record one OrchestratorStep per processed user message
2. Persist sessions, their orchestrator state and their messages
3. Survive restarts (file and Redis backends)

The orchestrator mutates OrchestratorState in place and calls
SessionManager.save_session() after every mutation. A failed save
raises StateBackendError; callers treat that as fatal.

Supported Backends:
    - memory: Process-local dictionaries (tests, one-off runs)
    - file: JSON file storage (default, simple)
    - redis: Shared storage for several processes
"""

import copy
import hashlib
import json
import logging
import os
import shutil
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Any

import redis.asyncio as aioredis

from agents.base.agent_interface import AgentType


logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# EXCEPTIONS
# =============================================================================

class StateManagerError(Exception):
    """Base exception for state manager errors."""
    pass


class StateNotFoundError(StateManagerError):
    """Session not found."""
    pass


class StateBackendError(StateManagerError):
    """Storage backend error."""
    pass


class StateValidationError(StateManagerError):
    """Stored data is malformed."""
    pass


# =============================================================================
# ENUMS
# =============================================================================

class OrchestratorStatus(Enum):
    """Status of the orchestrator state machine."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(Enum):
    """Status of a single orchestrator step."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class SessionStatus(Enum):
    """User-facing session status."""
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"
    ARCHIVED = "archived"


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# =============================================================================
# STATE DATA STRUCTURES
# =============================================================================

@dataclass
class OrchestratorStep:
    """One agent invocation. Immutable once closed."""
    step: int
    agent_type: AgentType
    status: StepStatus
    start_time: str = field(default_factory=_now)
    end_time: Optional[str] = None
    error: Optional[str] = None
    input_summary: Optional[str] = None
    output_summary: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "agent_type": self.agent_type.value,
            "status": self.status.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "error": self.error,
            "input_summary": self.input_summary,
            "output_summary": self.output_summary,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrchestratorStep":
        return cls(
            step=data["step"],
            agent_type=AgentType(data["agent_type"]),
            status=StepStatus(data["status"]),
            start_time=data.get("start_time") or _now(),
            end_time=data.get("end_time"),
            error=data.get("error"),
            input_summary=data.get("input_summary"),
            output_summary=data.get("output_summary"),
        )


@dataclass
class OrchestratorState:
    """
    State machine record owned by a session.

    Attributes:
        status: idle, running, completed or failed
        current_agent: Agent of the latest step, or the next agent to run
        context: Latest structured output per agent plus auxiliary results
        steps: Ordered step history; steps are never removed or reordered
    """
    status: OrchestratorStatus = OrchestratorStatus.IDLE
    current_agent: Optional[AgentType] = None
    context: Dict[str, Any] = field(default_factory=dict)
    steps: List[OrchestratorStep] = field(default_factory=list)

    @property
    def last_step(self) -> Optional[OrchestratorStep]:
        return self.steps[-1] if self.steps else None

    def update_step(
        self,
        agent_type: AgentType,
        status: StepStatus,
        error: Optional[str] = None,
        input_summary: Optional[str] = None,
        output_summary: Optional[str] = None,
    ) -> Optional[OrchestratorStep]:
        """
        Open a new step or close the current one.

        IN_PROGRESS always appends a new step. COMPLETED/ERROR close the
        last step only if it is still in progress; otherwise a warning is
        logged and nothing changes. The caller persists afterwards.

        Returns:
            The step that was opened or closed, or None for a no-op
        """
        if status == StepStatus.IN_PROGRESS:
            step = OrchestratorStep(
                step=len(self.steps) + 1,
                agent_type=agent_type,
                status=StepStatus.IN_PROGRESS,
                input_summary=input_summary,
            )
            self.steps.append(step)
            self.status = OrchestratorStatus.RUNNING
            self.current_agent = agent_type
            return step

        last = self.last_step
        if last is None or last.status != StepStatus.IN_PROGRESS:
            logger.warning(
                f"No step in progress to close as {status.value} for agent {agent_type.value}"
            )
            return None

        last.status = status
        last.end_time = _now()
        last.error = error
        last.output_summary = output_summary

        if status == StepStatus.COMPLETED:
            self.status = OrchestratorStatus.COMPLETED
        else:
            self.status = OrchestratorStatus.FAILED
        self.current_agent = agent_type
        return last

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "current_agent": self.current_agent.value if self.current_agent else None,
            "context": self.context,
            "steps": [step.to_dict() for step in self.steps],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "OrchestratorState":
        if not data:
            return cls()
        current = data.get("current_agent")
        return cls(
            status=OrchestratorStatus(data.get("status", "idle")),
            current_agent=AgentType(current) if current else None,
            context=data.get("context") or {},
            steps=[OrchestratorStep.from_dict(s) for s in data.get("steps", [])],
        )


@dataclass
class ChatMessage:
    """
    One conversation message.

    Assistant messages carry the agent's structured output in
    metadata["structured_output"]; rating/correction hold user feedback.
    """
    session_id: str
    role: MessageRole
    content: str
    agent_type: Optional[AgentType] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    rating: Optional[int] = None
    correction: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "role": self.role.value,
            "content": self.content,
            "agent_type": self.agent_type.value if self.agent_type else None,
            "metadata": self.metadata,
            "rating": self.rating,
            "correction": self.correction,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        agent_type = data.get("agent_type")
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            session_id=data["session_id"],
            role=MessageRole(data["role"]),
            content=data.get("content", ""),
            agent_type=AgentType(agent_type) if agent_type else None,
            metadata=data.get("metadata") or {},
            rating=data.get("rating"),
            correction=data.get("correction"),
            timestamp=data.get("timestamp") or _now(),
        )


@dataclass
class SessionRecord:
    """
    A conversation and its orchestrator state.

    Attributes:
        status: User-facing session status
        context: Session-level values merged into every task input
        orchestrator_state: The state machine record
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    title: Optional[str] = None
    status: SessionStatus = SessionStatus.ACTIVE
    context: Dict[str, Any] = field(default_factory=dict)
    orchestrator_state: OrchestratorState = field(default_factory=OrchestratorState)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    completed_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "context": self.context,
            "orchestrator_state": self.orchestrator_state.to_dict(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        try:
            return cls(
                id=data["id"],
                title=data.get("title"),
                status=SessionStatus(data.get("status", "active")),
                context=data.get("context") or {},
                orchestrator_state=OrchestratorState.from_dict(data.get("orchestrator_state")),
                created_at=data.get("created_at") or _now(),
                updated_at=data.get("updated_at") or _now(),
                completed_at=data.get("completed_at"),
            )
        except (KeyError, ValueError) as e:
            raise StateValidationError(f"Invalid session record: {e}")


# =============================================================================
# SESSION BACKEND INTERFACE
# =============================================================================

class SessionBackendInterface(ABC):
    """
    Abstract interface for session storage backends.

    Backends store plain dictionaries; SessionManager converts them to
    and from the dataclasses above. Write failures raise
    StateBackendError.
    """

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Retrieve a session dict, or None if not found."""
        pass

    @abstractmethod
    async def save_session(self, session_id: str, data: Dict[str, Any]) -> None:
        """Persist a session dict."""
        pass

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        """Delete a session and its messages. True if it existed."""
        pass

    @abstractmethod
    async def list_session_ids(self) -> List[str]:
        pass

    @abstractmethod
    async def append_message(self, session_id: str, message: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def get_messages(self, session_id: str) -> List[Dict[str, Any]]:
        """Messages of a session, oldest first."""
        pass

    @abstractmethod
    async def update_message(self, session_id: str, message: Dict[str, Any]) -> bool:
        """Replace a stored message by id. True if it was found."""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        pass

    async def close(self):
        pass


# =============================================================================
# MEMORY BACKEND
# =============================================================================

class MemorySessionBackend(SessionBackendInterface):
    """Process-local storage. Values are deep-copied in and out."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._messages: Dict[str, List[Dict[str, Any]]] = {}

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        data = self._sessions.get(session_id)
        return copy.deepcopy(data) if data is not None else None

    async def save_session(self, session_id: str, data: Dict[str, Any]) -> None:
        self._sessions[session_id] = copy.deepcopy(data)

    async def delete_session(self, session_id: str) -> bool:
        self._messages.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    async def list_session_ids(self) -> List[str]:
        return list(self._sessions.keys())

    async def append_message(self, session_id: str, message: Dict[str, Any]) -> None:
        self._messages.setdefault(session_id, []).append(copy.deepcopy(message))

    async def get_messages(self, session_id: str) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._messages.get(session_id, []))

    async def update_message(self, session_id: str, message: Dict[str, Any]) -> bool:
        messages = self._messages.get(session_id, [])
        for index, existing in enumerate(messages):
            if existing.get("id") == message.get("id"):
                messages[index] = copy.deepcopy(message)
                return True
        return False

    async def health_check(self) -> Dict[str, Any]:
        return {"healthy": True, "backend": "memory", "session_count": len(self._sessions)}


# =============================================================================
# FILE BACKEND
# =============================================================================

class FileSessionBackend(SessionBackendInterface):
    """
    File-based session persistence using JSON.

    Suitable for development and single-instance deployments.

    State is stored in a JSON file with structure:
    {
        "sessions": {"<id>": { ... session ... }},
        "messages": {"<id>": [ ... messages ... ]},
        "metadata": {"last_updated": "...", "version": "1.0"}
    }
    """

    STATE_VERSION = "1.0"

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize file backend.

        Args:
            config: Configuration containing:
                - file.path: Path to state file
                - file.backup_enabled: Enable backups
                - file.backup_count: Number of backups to keep
        """
        file_config = config.get("file", config.get("persistence", {}).get("file", {}))

        self.file_path = Path(file_config.get("path", "state/sessions.json"))
        self.backup_enabled = file_config.get("backup_enabled", True)
        self.backup_count = file_config.get("backup_count", 5)

        self.logger = logging.getLogger("orchestrator.state.file")
        self._lock = threading.RLock()
        self._cache: Optional[Dict[str, Any]] = None
        self._cache_hash: Optional[str] = None

        self._ensure_file_exists()

    def _ensure_file_exists(self):
        """Create state file if it doesn't exist."""
        self.file_path.parent.mkdir(parents=True, exist_ok=True)

        if not self.file_path.exists():
            initial_state = {
                "sessions": {},
                "messages": {},
                "metadata": {
                    "version": self.STATE_VERSION,
                    "created_at": _now(),
                    "last_updated": _now(),
                },
            }
            self._write_file(initial_state)
            self.logger.info(f"Created state file: {self.file_path}")

    def _read_file(self) -> Dict[str, Any]:
        """Read state file with caching. Callers get a private copy."""
        with self._lock:
            try:
                content = self.file_path.read_text(encoding="utf-8")
                content_hash = hashlib.md5(content.encode()).hexdigest()

                if self._cache is None or self._cache_hash != content_hash:
                    self._cache = json.loads(content)
                    self._cache_hash = content_hash

                data = copy.deepcopy(self._cache)
                data.setdefault("sessions", {})
                data.setdefault("messages", {})
                data.setdefault("metadata", {})
                return data

            except json.JSONDecodeError as e:
                self.logger.error(f"Invalid JSON in state file: {e}")
                raise StateBackendError(f"Invalid state file: {e}")
            except OSError as e:
                self.logger.error(f"Error reading state file: {e}")
                raise StateBackendError(f"Failed to read state: {e}")

    def _write_file(self, data: Dict[str, Any]):
        """Write state file atomically with backup."""
        with self._lock:
            if self.backup_enabled and self.file_path.exists():
                self._create_backup()

            data["metadata"]["last_updated"] = _now()
            content = json.dumps(data, indent=2, default=str)

            temp_path = self.file_path.with_suffix(".tmp")
            try:
                temp_path.write_text(content, encoding="utf-8")
                temp_path.replace(self.file_path)

                self._cache = json.loads(content)
                self._cache_hash = hashlib.md5(content.encode()).hexdigest()

            except OSError as e:
                if temp_path.exists():
                    temp_path.unlink()
                raise StateBackendError(f"Failed to write state: {e}")

    def _create_backup(self):
        """Create a backup of the state file."""
        backup_dir = self.file_path.parent / "backups"
        backup_dir.mkdir(exist_ok=True)

        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        backup_path = backup_dir / f"{self.file_path.stem}_{timestamp}.json"

        try:
            shutil.copy2(self.file_path, backup_path)

            backups = sorted(backup_dir.glob(f"{self.file_path.stem}_*.json"))
            while len(backups) > self.backup_count:
                oldest = backups.pop(0)
                oldest.unlink()

        except OSError as e:
            self.logger.warning(f"Failed to create backup: {e}")

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self._read_file()["sessions"].get(session_id)

    async def save_session(self, session_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            state = self._read_file()
            state["sessions"][session_id] = data
            self._write_file(state)
        self.logger.debug(f"Saved session {session_id}")

    async def delete_session(self, session_id: str) -> bool:
        with self._lock:
            state = self._read_file()
            if session_id not in state["sessions"]:
                return False
            del state["sessions"][session_id]
            state["messages"].pop(session_id, None)
            self._write_file(state)
        self.logger.info(f"Deleted session {session_id}")
        return True

    async def list_session_ids(self) -> List[str]:
        return list(self._read_file()["sessions"].keys())

    async def append_message(self, session_id: str, message: Dict[str, Any]) -> None:
        with self._lock:
            state = self._read_file()
            state["messages"].setdefault(session_id, []).append(message)
            self._write_file(state)

    async def get_messages(self, session_id: str) -> List[Dict[str, Any]]:
        return self._read_file()["messages"].get(session_id, [])

    async def update_message(self, session_id: str, message: Dict[str, Any]) -> bool:
        with self._lock:
            state = self._read_file()
            messages = state["messages"].get(session_id, [])
            for index, existing in enumerate(messages):
                if existing.get("id") == message.get("id"):
                    messages[index] = message
                    self._write_file(state)
                    return True
        return False

    async def health_check(self) -> Dict[str, Any]:
        """Check file backend health."""
        try:
            data = self._read_file()
            return {
                "healthy": True,
                "backend": "file",
                "file_path": str(self.file_path),
                "session_count": len(data["sessions"]),
                "last_updated": data["metadata"].get("last_updated"),
            }
        except StateBackendError as e:
            return {"healthy": False, "backend": "file", "error": str(e)}


# =============================================================================
# REDIS BACKEND
# =============================================================================

class RedisSessionBackend(SessionBackendInterface):
    """
    Redis-based session persistence.

    Key structure:
        {prefix}:session:{id} -> JSON session
        {prefix}:messages:{id} -> List of JSON messages
        {prefix}:sessions -> Set of session ids
    """

    def __init__(self, config: Dict[str, Any], client=None):
        """
        Initialize Redis backend.

        Args:
            config: Configuration containing:
                - redis.url: Redis connection URL
                - redis.key_prefix: Key prefix
                - redis.ttl_seconds: Session TTL (0 = no expiry)
            client: Pre-built redis.asyncio client
        """
        redis_config = config.get("redis", config.get("persistence", {}).get("redis", {}))

        self.redis_url = redis_config.get("url", os.environ.get("REDIS_URL", "redis://localhost:6379"))
        self.key_prefix = redis_config.get("key_prefix", "agentforge")
        self.ttl_seconds = redis_config.get("ttl_seconds", 0)

        self.logger = logging.getLogger("orchestrator.state.redis")
        self._client = client

    async def _get_client(self):
        """Get or create Redis client."""
        if self._client is None:
            try:
                self._client = aioredis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                self.logger.info("Redis connection established")
            except Exception as e:
                raise StateBackendError(f"Failed to connect to Redis: {e}")
        return self._client

    def _session_key(self, session_id: str) -> str:
        return f"{self.key_prefix}:session:{session_id}"

    def _messages_key(self, session_id: str) -> str:
        return f"{self.key_prefix}:messages:{session_id}"

    def _all_sessions_key(self) -> str:
        return f"{self.key_prefix}:sessions"

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        try:
            client = await self._get_client()
            data = await client.get(self._session_key(session_id))
            return json.loads(data) if data else None
        except Exception as e:
            self.logger.error(f"Error getting session {session_id}: {e}")
            raise StateBackendError(f"Redis get failed: {e}")

    async def save_session(self, session_id: str, data: Dict[str, Any]) -> None:
        try:
            client = await self._get_client()
            payload = json.dumps(data, default=str)

            async with client.pipeline(transaction=True) as pipe:
                if self.ttl_seconds > 0:
                    pipe.setex(self._session_key(session_id), self.ttl_seconds, payload)
                else:
                    pipe.set(self._session_key(session_id), payload)
                pipe.sadd(self._all_sessions_key(), session_id)
                await pipe.execute()

        except Exception as e:
            self.logger.error(f"Error saving session {session_id}: {e}")
            raise StateBackendError(f"Redis save failed: {e}")

    async def delete_session(self, session_id: str) -> bool:
        try:
            client = await self._get_client()
            async with client.pipeline(transaction=True) as pipe:
                pipe.delete(self._session_key(session_id))
                pipe.delete(self._messages_key(session_id))
                pipe.srem(self._all_sessions_key(), session_id)
                results = await pipe.execute()
            return bool(results[0])
        except Exception as e:
            raise StateBackendError(f"Redis delete failed: {e}")

    async def list_session_ids(self) -> List[str]:
        try:
            client = await self._get_client()
            return sorted(await client.smembers(self._all_sessions_key()))
        except Exception as e:
            raise StateBackendError(f"Redis list failed: {e}")

    async def append_message(self, session_id: str, message: Dict[str, Any]) -> None:
        try:
            client = await self._get_client()
            await client.rpush(self._messages_key(session_id), json.dumps(message, default=str))
        except Exception as e:
            raise StateBackendError(f"Redis append failed: {e}")

    async def get_messages(self, session_id: str) -> List[Dict[str, Any]]:
        try:
            client = await self._get_client()
            items = await client.lrange(self._messages_key(session_id), 0, -1)
            return [json.loads(item) for item in items]
        except Exception as e:
            raise StateBackendError(f"Redis read failed: {e}")

    async def update_message(self, session_id: str, message: Dict[str, Any]) -> bool:
        messages = await self.get_messages(session_id)
        for index, existing in enumerate(messages):
            if existing.get("id") == message.get("id"):
                try:
                    client = await self._get_client()
                    await client.lset(self._messages_key(session_id), index,
                                      json.dumps(message, default=str))
                except Exception as e:
                    raise StateBackendError(f"Redis update failed: {e}")
                return True
        return False

    async def health_check(self) -> Dict[str, Any]:
        """Check Redis backend health."""
        try:
            client = await self._get_client()
            await client.ping()
            sessions = await client.smembers(self._all_sessions_key())
            return {
                "healthy": True,
                "backend": "redis",
                "url": self.redis_url.split("@")[-1],
                "session_count": len(sessions),
            }
        except Exception as e:
            return {"healthy": False, "backend": "redis", "error": str(e)}

    async def close(self):
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


# =============================================================================
# SESSION MANAGER (FACTORY + WRAPPER)
# =============================================================================

BACKENDS = {
    "memory": MemorySessionBackend,
    "file": FileSessionBackend,
    "redis": RedisSessionBackend,
}


class SessionManager:
    """
    Factory and wrapper class for session persistence.

    Usage:
        sessions = await SessionManager.create(config)
        session = await sessions.create_session("Todo API")
        session.orchestrator_state.update_step(AgentType.PRODUCT, StepStatus.IN_PROGRESS)
        await sessions.save_session(session)
    """

    def __init__(self, backend: SessionBackendInterface):
        """Initialize with a backend."""
        self._backend = backend
        self.logger = logging.getLogger("orchestrator.state")

    @classmethod
    async def create(cls, config: Dict[str, Any]) -> "SessionManager":
        """
        Create a session manager based on configuration.

        Args:
            config: Configuration with persistence settings

        Returns:
            SessionManager with the configured backend
        """
        persistence = config.get("persistence", {})
        backend_type = persistence.get("backend", "file")

        backend_class = BACKENDS.get(backend_type)
        if backend_class is None:
            raise ValueError(f"Unknown state backend: {backend_type}")

        return cls(backend_class(persistence))

    async def create_session(self, title: Optional[str] = None,
                             context: Optional[Dict[str, Any]] = None) -> SessionRecord:
        """Create and persist a new session with idle orchestrator state."""
        session = SessionRecord(title=title, context=context or {})
        await self.save_session(session)
        self.logger.info(f"Created session {session.id}")
        return session

    async def get_session(self, session_id: str) -> SessionRecord:
        """
        Load a session.

        Raises:
            StateNotFoundError: If the session does not exist
        """
        data = await self._backend.get_session(session_id)
        if data is None:
            raise StateNotFoundError(f"Session {session_id} not found")
        return SessionRecord.from_dict(data)

    async def save_session(self, session: SessionRecord) -> None:
        """
        Persist a session.

        Raises:
            StateBackendError: If the write failed
        """
        session.updated_at = _now()
        if session.status == SessionStatus.COMPLETED and not session.completed_at:
            session.completed_at = session.updated_at
        await self._backend.save_session(session.id, session.to_dict())

    async def delete_session(self, session_id: str) -> bool:
        return await self._backend.delete_session(session_id)

    async def list_sessions(self, status: Optional[SessionStatus] = None) -> List[SessionRecord]:
        """All sessions, optionally filtered by status."""
        sessions = []
        for session_id in await self._backend.list_session_ids():
            data = await self._backend.get_session(session_id)
            if data is None:
                continue
            session = SessionRecord.from_dict(data)
            if status is None or session.status == status:
                sessions.append(session)
        return sessions

    async def append_message(self, message: ChatMessage) -> ChatMessage:
        await self._backend.append_message(message.session_id, message.to_dict())
        return message

    async def get_messages(self, session_id: str) -> List[ChatMessage]:
        return [ChatMessage.from_dict(m) for m in await self._backend.get_messages(session_id)]

    async def update_message(self, message: ChatMessage) -> bool:
        return await self._backend.update_message(message.session_id, message.to_dict())

    async def health_check(self) -> Dict[str, Any]:
        return await self._backend.health_check()

    async def close(self):
        await self._backend.close()
