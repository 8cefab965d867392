"""Mail integration endpoints: connection check, incremental fetch, accounts."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Callable, NoReturn, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from inboxsync.application.ports.account_store import AccountStore
from inboxsync.application.ports.mailbox import MailboxAdapter
from inboxsync.application.ports.task_service import TaskService
from inboxsync.application.use_cases.email_to_task import CreateTaskFromEmailUseCase
from inboxsync.application.use_cases.sync_mailbox import MailboxSyncController, sync_account
from inboxsync.domain.cursor import SyncCursor
from inboxsync.domain.entities.mail_account import AccountConfig, MailAccount, MailProtocol
from inboxsync.domain.entities.normalized_message import NormalizedMessage, PollResult
from inboxsync.domain.entities.task_draft import TaskPriority
from inboxsync.domain.errors import AuthenticationError, ConnectivityError, MailSyncError, TaskServiceError
from inboxsync.infrastructure.email.factory import adapter_for
from inboxsync.infrastructure.settings import Settings, get_settings
from inboxsync.infrastructure.stores import get_account_store
from inboxsync.infrastructure.tasks.http_task_service import get_task_service

router = APIRouter(prefix="/api/mail", tags=["mail"])

AdapterFactory = Callable[[AccountConfig, float], MailboxAdapter]


def get_adapter_factory() -> AdapterFactory:
    return adapter_for


def account_store() -> AccountStore:
    return get_account_store()


def task_service() -> TaskService:
    return get_task_service()


# ============================================================================
# Request/Response Models
# ============================================================================


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MailConfigPayload(CamelModel):
    """Connection details as the web client sends them."""

    protocol: MailProtocol
    host: str = Field(..., min_length=1)
    port: int = Field(..., gt=0, lt=65536)
    use_ssl: bool = Field(True, alias="useSSL")
    email: str = Field(..., min_length=1)
    password: str = Field("", repr=False)

    def to_config(self) -> AccountConfig:
        return AccountConfig(
            protocol=self.protocol,
            host=self.host.strip(),
            port=self.port,
            use_ssl=self.use_ssl,
            email=self.email.strip(),
            password=self.password,
        )


class MessagesRequest(CamelModel):
    config: Optional[MailConfigPayload] = None
    last_uid: Optional[Union[str, int]] = None


class EmailPayload(CamelModel):
    id: str
    sender_name: str
    sender_address: str
    subject: str
    body: str
    received_at: datetime
    is_read: bool = False

    @classmethod
    def from_message(cls, msg: NormalizedMessage) -> EmailPayload:
        return cls(
            id=msg.id,
            sender_name=msg.sender_name,
            sender_address=msg.sender_address,
            subject=msg.subject,
            body=msg.body,
            received_at=msg.received_at,
            is_read=msg.is_read,
        )

    def to_message(self) -> NormalizedMessage:
        return NormalizedMessage(
            id=self.id,
            sender_name=self.sender_name,
            sender_address=self.sender_address,
            subject=self.subject,
            body=self.body,
            received_at=self.received_at,
            is_read=self.is_read,
        )


class MessagesResponse(CamelModel):
    emails: list[EmailPayload]
    latest_uid: Optional[str]
    mode: str

    @classmethod
    def from_result(cls, result: PollResult, known_ids: frozenset[str] = frozenset()) -> MessagesResponse:
        return cls(
            emails=[EmailPayload.from_message(m) for m in result.messages if m.id not in known_ids],
            latest_uid=result.cursor.to_wire(),
            mode=result.mode.value,
        )


class CreateAccountRequest(CamelModel):
    name: str = Field(..., min_length=1)
    config: MailConfigPayload


class AccountResponse(CamelModel):
    id: str
    name: str
    protocol: MailProtocol
    host: str
    port: int
    use_ssl: bool = Field(alias="useSSL")
    email: str
    latest_uid: Optional[str] = None

    @classmethod
    def from_account(cls, account: MailAccount) -> AccountResponse:
        cfg = account.config
        return cls(
            id=account.account_id,
            name=account.alias,
            protocol=cfg.protocol,
            host=cfg.host,
            port=cfg.port,
            use_ssl=cfg.use_ssl,
            email=cfg.email,
            latest_uid=account.cursor.to_wire(),
        )


class AccountPollRequest(CamelModel):
    password: str = Field(..., min_length=1, repr=False)
    known_ids: list[str] = Field(default_factory=list)


class CreateTaskRequest(CamelModel):
    user_id: str
    email: EmailPayload
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[date] = None


# ============================================================================
# Helpers
# ============================================================================


def _raise_mail_error(e: MailSyncError) -> NoReturn:
    if isinstance(e, AuthenticationError):
        logger.warning(f"Mail authentication failed: {e}")
        raise HTTPException(
            status_code=401,
            detail={"message": "Authentication failed. Please re-enter your credentials.", "error": str(e)},
        ) from e
    if isinstance(e, ConnectivityError):
        logger.warning(f"Mail server unreachable: {e}")
        raise HTTPException(
            status_code=502,
            detail={"message": "Connection failed. Check the server settings.", "error": str(e)},
        ) from e
    logger.error(f"Mail error: {e}")
    raise HTTPException(status_code=500, detail={"message": "Mail operation failed", "error": str(e)}) from e


def _require_account(store: AccountStore, account_id: str) -> MailAccount:
    account = store.get(account_id)
    if account is None:
        raise HTTPException(status_code=404, detail=f"Mail account {account_id} not found")
    return account


# ============================================================================
# Stateless endpoints (cursor held by the client)
# ============================================================================


@router.post("/connect")
def connect(
    payload: MailConfigPayload,
    settings: Settings = Depends(get_settings),
    make_adapter: AdapterFactory = Depends(get_adapter_factory),
) -> dict[str, bool]:
    """Verify host, port, TLS and credentials with one short-lived session."""
    config = payload.to_config()
    logger.info(f"[Mail] Connecting to {config.describe()}")

    try:
        MailboxSyncController(make_adapter(config, settings.mail_connect_timeout)).connect()
    except MailSyncError as e:
        _raise_mail_error(e)
    return {"success": True}


@router.post("/messages", response_model=MessagesResponse, response_model_by_alias=True)
def fetch_messages(
    payload: MessagesRequest,
    settings: Settings = Depends(get_settings),
    make_adapter: AdapterFactory = Depends(get_adapter_factory),
) -> MessagesResponse:
    """
    Fetch what is new since ``lastUid``.

    ``lastUid`` is opaque: clients store the returned ``latestUid`` verbatim
    and send it back on the next call. Omit it for the initial sync.
    """
    if payload.config is None or not payload.config.password:
        raise HTTPException(status_code=400, detail="Mail credentials missing")

    config = payload.config.to_config()
    controller = MailboxSyncController(
        make_adapter(config, settings.mail_poll_timeout),
        initial_batch_size=settings.mail_initial_batch_size,
    )

    try:
        result = controller.poll(SyncCursor.from_wire(payload.last_uid))
    except MailSyncError as e:
        _raise_mail_error(e)
    return MessagesResponse.from_result(result)


@router.post("/messages/task")
def create_task_from_email(
    payload: CreateTaskRequest,
    tasks: TaskService = Depends(task_service),
) -> dict[str, Any]:
    """Create a task from a displayed message."""
    try:
        return CreateTaskFromEmailUseCase(tasks).run(
            payload.user_id,
            payload.email.to_message(),
            priority=payload.priority,
            due_date=payload.due_date,
        )
    except TaskServiceError as e:
        raise HTTPException(status_code=502, detail={"message": "Failed to create task", "error": str(e)}) from e


# ============================================================================
# Stored accounts (cursor held server-side, password supplied per call)
# ============================================================================


@router.post("/accounts", response_model=AccountResponse, response_model_by_alias=True, status_code=201)
def create_account(
    payload: CreateAccountRequest,
    settings: Settings = Depends(get_settings),
    store: AccountStore = Depends(account_store),
    make_adapter: AdapterFactory = Depends(get_adapter_factory),
) -> AccountResponse:
    """Verify the connection, then store the account without its password."""
    config = payload.config.to_config()
    try:
        MailboxSyncController(make_adapter(config, settings.mail_connect_timeout)).connect()
    except MailSyncError as e:
        _raise_mail_error(e)

    account = MailAccount(
        account_id=f"mail-{uuid.uuid4().hex[:12]}",
        alias=payload.name.strip(),
        config=config.without_password(),
    )
    store.put(account)
    return AccountResponse.from_account(account)


@router.get("/accounts", response_model=list[AccountResponse], response_model_by_alias=True)
def list_accounts(store: AccountStore = Depends(account_store)) -> list[AccountResponse]:
    return [AccountResponse.from_account(a) for a in store.list()]


@router.delete("/accounts/{account_id}", status_code=204)
def delete_account(account_id: str, store: AccountStore = Depends(account_store)) -> None:
    if not store.delete(account_id):
        raise HTTPException(status_code=404, detail=f"Mail account {account_id} not found")


@router.post("/accounts/{account_id}/poll", response_model=MessagesResponse, response_model_by_alias=True)
def poll_account(
    account_id: str,
    payload: AccountPollRequest,
    settings: Settings = Depends(get_settings),
    store: AccountStore = Depends(account_store),
    make_adapter: AdapterFactory = Depends(get_adapter_factory),
) -> MessagesResponse:
    """
    Poll a stored account. The cursor is persisted only after a successful poll.

    ``knownIds`` lets the client drop messages it already shows, which can
    reappear after the cursor was lost and re-synced.
    """
    account = _require_account(store, account_id).with_password(payload.password)
    adapter = make_adapter(account.config, settings.mail_poll_timeout)

    try:
        result = sync_account(account, store, adapter, settings.mail_initial_batch_size)
    except MailSyncError as e:
        _raise_mail_error(e)
    return MessagesResponse.from_result(result, frozenset(payload.known_ids))


@router.post("/accounts/{account_id}/reset", response_model=AccountResponse, response_model_by_alias=True)
def reset_account(account_id: str, store: AccountStore = Depends(account_store)) -> AccountResponse:
    """Forget the cursor so the next poll is an initial sync."""
    account = _require_account(store, account_id)
    store.save_cursor(account_id, SyncCursor.unset())
    logger.info(f"Reset sync cursor for {account_id}")
    return AccountResponse.from_account(account.with_cursor(SyncCursor.unset()))
