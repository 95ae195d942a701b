"""
Canonical data shapes, shared truth for typing/validation between layers.

Typical contents:
- Assistant (built-in persona) with its rating distribution.
- GPT (user-authored assistant configuration).
- Chat, Message, Attachment, Feedback.
- Small value objects passed to collaborators (VoiceSettings, AskConfig, AskResult).

Entities are frozen; stores replace them instead of mutating in place, so a
reader never holds a reference that changes underneath it.

Wire format (to_dict/from_dict) uses camelCase keys and keeps the timestamp
encodings of the persisted client state: epoch milliseconds for chats and
messages, ISO-8601 strings for GPT configurations.

Testing: Trivial; mostly types. Round-trips are covered by persistence tests.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional, Union
from enum import Enum
from datetime import datetime
import uuid


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    DRAFT = "draft"


class Voice(str, Enum):
    ALLOY = "alloy"
    ECHO = "echo"
    FABLE = "fable"
    ONYX = "onyx"
    NOVA = "nova"
    SHIMMER = "shimmer"


class GPTModel(str, Enum):
    GPT_4 = "gpt-4"
    GPT_4_TURBO = "gpt-4-turbo-preview"
    GPT_4O = "gpt-4o"
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_35_TURBO = "gpt-3.5-turbo"


class Category(str, Enum):
    FEATURED = "Featured"
    TRENDING = "Trending"
    SPECIALIZED = "Specialized"


def new_id() -> str:
    return uuid.uuid4().hex


def to_millis(ts: datetime) -> int:
    return round(ts.timestamp() * 1000)


def from_millis(ms: Union[int, float]) -> datetime:
    return datetime.fromtimestamp(ms / 1000)


def truncate_to_millis(ts: datetime) -> datetime:
    """Drop sub-millisecond precision so a value survives the epoch-ms wire format."""
    return ts.replace(microsecond=ts.microsecond // 1000 * 1000)


def parse_iso(value: str) -> datetime:
    """ISO-8601 to naive local time. Accepts the trailing 'Z' written by JavaScript."""
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is not None:
        ts = ts.astimezone().replace(tzinfo=None)
    return ts


def _enum_or_none(enum_cls, value):
    """Parse a persisted enum value; unknown values degrade to None."""
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return None


# ---------------------------
# Ratings
# ---------------------------

BUCKET_NAMES = {5: "five", 4: "four", 3: "three", 2: "two", 1: "one"}


@dataclass(frozen=True)
class RatingDistribution:
    five: int = 0
    four: int = 0
    three: int = 0
    two: int = 0
    one: int = 0

    def count(self, rating: int) -> int:
        return getattr(self, BUCKET_NAMES[rating])

    @property
    def total(self) -> int:
        return self.five + self.four + self.three + self.two + self.one

    @property
    def weighted_sum(self) -> int:
        return sum(value * self.count(value) for value in BUCKET_NAMES)

    def to_dict(self) -> dict:
        return {name: self.count(value) for value, name in BUCKET_NAMES.items()}

    @classmethod
    def from_dict(cls, data: dict) -> "RatingDistribution":
        return cls(**{name: int(data.get(name, 0)) for name in BUCKET_NAMES.values()})


@dataclass(frozen=True)
class AssistantStats:
    users: int = 0
    rating: float = 0.0
    ratings: RatingDistribution = field(default_factory=RatingDistribution)

    def to_dict(self) -> dict:
        return {
            "users": self.users,
            "rating": self.rating,
            "ratings": self.ratings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AssistantStats":
        return cls(
            users=int(data.get("users", 0)),
            rating=float(data.get("rating", 0.0)),
            ratings=RatingDistribution.from_dict(data.get("ratings") or {}),
        )


# ---------------------------
# Assistants and GPTs
# ---------------------------


@dataclass(frozen=True)
class Assistant:
    id: str
    name: str
    description: str
    avatar: str
    role: str
    is_primary: bool = False
    is_default: bool = False
    voice: Optional[Voice] = None
    category: Optional[Category] = None
    creator: Optional[str] = None
    chat_count: Optional[int] = None
    stats: Optional[AssistantStats] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "avatar": self.avatar,
            "role": self.role,
            "isPrimary": self.is_primary,
            "isDefault": self.is_default,
        }
        if self.voice is not None:
            data["voice"] = self.voice.value
        if self.category is not None:
            data["category"] = self.category.value
        if self.creator is not None:
            data["creator"] = self.creator
        if self.chat_count is not None:
            data["chatCount"] = self.chat_count
        if self.stats is not None:
            data["stats"] = self.stats.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Assistant":
        stats = data.get("stats")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description", ""),
            avatar=data.get("avatar", ""),
            role=data.get("role", ""),
            is_primary=bool(data.get("isPrimary", False)),
            is_default=bool(data.get("isDefault", False)),
            voice=_enum_or_none(Voice, data.get("voice")),
            category=_enum_or_none(Category, data.get("category")),
            creator=data.get("creator"),
            chat_count=data.get("chatCount"),
            stats=AssistantStats.from_dict(stats) if stats else None,
        )


@dataclass(frozen=True)
class Capabilities:
    web_search: bool = False
    code_interpreter: bool = False
    image_generation: bool = False
    file_upload: bool = False

    @classmethod
    def all_enabled(cls) -> "Capabilities":
        return cls(True, True, True, True)

    def to_dict(self) -> dict:
        return {
            "webSearch": self.web_search,
            "codeInterpreter": self.code_interpreter,
            "imageGeneration": self.image_generation,
            "fileUpload": self.file_upload,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Capabilities":
        return cls(
            web_search=bool(data.get("webSearch", False)),
            code_interpreter=bool(data.get("codeInterpreter", False)),
            image_generation=bool(data.get("imageGeneration", False)),
            file_upload=bool(data.get("fileUpload", False)),
        )


@dataclass(frozen=True)
class ApiConfig:
    use_custom_api: bool = False


@dataclass(frozen=True)
class GPT:
    """
    A user-authored assistant configuration.

    backend_id is the identifier the language-model backend understands; an
    empty value means the configuration is not usable for chatting yet.
    files keeps upload order.
    """

    id: str
    name: str
    description: str = ""
    role: str = ""
    avatar: str = ""
    backend_id: str = ""
    instructions: Optional[str] = None
    capabilities: Capabilities = field(default_factory=Capabilities)
    files: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None
    model: Optional[GPTModel] = None
    visibility: Visibility = Visibility.PUBLIC
    is_default: bool = False
    api_config: Optional[ApiConfig] = None

    @property
    def recency(self) -> datetime:
        """updatedAt ?? createdAt, the key for every recency ordering."""
        return self.updated_at or self.created_at

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "role": self.role,
            "avatar": self.avatar,
            "gptId": self.backend_id,
            "capabilities": self.capabilities.to_dict(),
            "files": list(self.files),
            "createdAt": self.created_at.isoformat(),
            "visibility": self.visibility.value,
            "isDefault": self.is_default,
        }
        if self.instructions is not None:
            data["instructions"] = self.instructions
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at.isoformat()
        if self.model is not None:
            data["model"] = self.model.value
        if self.api_config is not None:
            data["apiConfig"] = {"useCustomApi": self.api_config.use_custom_api}
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "GPT":
        updated = data.get("updatedAt")
        api_config = data.get("apiConfig")
        created = data.get("createdAt")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description", ""),
            role=data.get("role", ""),
            avatar=data.get("avatar", ""),
            backend_id=data.get("gptId") or "",
            instructions=data.get("instructions"),
            capabilities=Capabilities.from_dict(data.get("capabilities") or {}),
            files=tuple(data.get("files") or ()),
            created_at=parse_iso(created) if created else datetime.now(),
            updated_at=parse_iso(updated) if updated else None,
            model=_enum_or_none(GPTModel, data.get("model")),
            visibility=_enum_or_none(Visibility, data.get("visibility"))
            or Visibility.PUBLIC,
            is_default=bool(data.get("isDefault", False)),
            api_config=(
                ApiConfig(bool(api_config.get("useCustomApi", False)))
                if api_config
                else None
            ),
        )


# ---------------------------
# Chats and messages
# ---------------------------


@dataclass(frozen=True)
class Attachment:
    """Document or image attached to a message. Images carry dimensions."""

    id: str
    name: str
    type: str
    size: int
    content: str
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def is_image(self) -> bool:
        return self.type.startswith("image/")

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "size": self.size,
            "content": self.content,
        }
        if self.width is not None:
            data["width"] = self.width
        if self.height is not None:
            data["height"] = self.height
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Attachment":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            type=data.get("type") or "application/octet-stream",
            size=int(data.get("size", 0)),
            content=data.get("content", ""),
            width=data.get("width"),
            height=data.get("height"),
        )


@dataclass(frozen=True)
class Feedback:
    is_positive: bool
    comment: Optional[str] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"isPositive": self.is_positive}
        if self.comment is not None:
            data["comment"] = self.comment
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Feedback":
        return cls(bool(data["isPositive"]), data.get("comment"))


@dataclass(frozen=True)
class Message:
    id: str
    content: str
    role: Role
    timestamp: datetime
    assistant_id: str
    attachments: tuple[Attachment, ...] = ()
    feedback: Optional[Feedback] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "content": self.content,
            "role": self.role.value,
            "timestamp": to_millis(self.timestamp),
            "assistantId": self.assistant_id,
        }
        if self.attachments:
            data["attachments"] = [a.to_dict() for a in self.attachments]
        if self.feedback is not None:
            data["feedback"] = self.feedback.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        feedback = data.get("feedback")
        return cls(
            id=data["id"],
            content=data.get("content", ""),
            role=Role(data["role"]),
            timestamp=from_millis(data["timestamp"]),
            assistant_id=data["assistantId"],
            attachments=tuple(
                Attachment.from_dict(a) for a in data.get("attachments") or ()
            ),
            feedback=Feedback.from_dict(feedback) if feedback else None,
        )


@dataclass(frozen=True)
class Chat:
    id: str
    title: str
    assistant_id: str
    last_updated: datetime
    created_at: datetime
    messages: tuple[Message, ...] = ()
    archived: bool = False
    has_interaction: bool = False

    def find_message(self, message_id: str) -> Optional[Message]:
        return next((m for m in self.messages if m.id == message_id), None)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "assistantId": self.assistant_id,
            "messages": [m.to_dict() for m in self.messages],
            "lastUpdated": to_millis(self.last_updated),
            "createdAt": to_millis(self.created_at),
            "archived": self.archived,
            "hasInteraction": self.has_interaction,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Chat":
        return cls(
            id=data["id"],
            title=data.get("title") or "New Chat",
            assistant_id=data["assistantId"],
            messages=tuple(Message.from_dict(m) for m in data.get("messages") or ()),
            last_updated=from_millis(data["lastUpdated"]),
            created_at=from_millis(data.get("createdAt", data["lastUpdated"])),
            archived=bool(data.get("archived", False)),
            has_interaction=bool(data.get("hasInteraction", False)),
        )


@dataclass(frozen=True)
class NoActiveChat:
    pass


@dataclass(frozen=True)
class ActiveChat:
    chat_id: str


ActiveChatState = Union[NoActiveChat, ActiveChat]
NO_ACTIVE_CHAT = NoActiveChat()


@dataclass
class ChatGroups:
    today: list[Chat] = field(default_factory=list)
    yesterday: list[Chat] = field(default_factory=list)
    last_week: list[Chat] = field(default_factory=list)
    older: list[Chat] = field(default_factory=list)


# ---------------------------
# Collaborator value objects
# ---------------------------


@dataclass(frozen=True)
class VoiceSettings:
    voice: Voice = Voice.ALLOY
    speed: float = 1.0
    volume: float = 0.8

    def __post_init__(self):
        object.__setattr__(self, "speed", min(max(float(self.speed), 0.5), 2.0))
        object.__setattr__(self, "volume", min(max(float(self.volume), 0.0), 1.0))


@dataclass
class BackendSettings:
    model: str = GPTModel.GPT_4.value
    temperature: float = 0.7
    top_p: float = 1.0
    max_tokens: int = 2000


@dataclass(frozen=True)
class AskConfig:
    backend_id: str
    model: Optional[str] = None


@dataclass(frozen=True)
class AskResult:
    content: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class PendingRequest:
    """An in-flight backend call and the chat its answer belongs to."""

    token: str
    chat_id: str
    assistant_id: str
    created_at: datetime = field(default_factory=datetime.now)
