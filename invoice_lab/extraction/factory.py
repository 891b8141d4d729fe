from typing import ClassVar

import httpx

from invoice_lab.config.settings import Settings
from invoice_lab.extraction.base import BaseExtractionAdapter, PollingAdapter
from invoice_lab.extraction.jsonrpc_adapter import JsonRpcSession, JsonRpcToolAdapter
from invoice_lab.extraction.task_poll_adapter import TaskPollAdapter
from invoice_lab.extraction.transaction_poll_adapter import TransactionPollAdapter
from invoice_lab.logging.logger import Log
from invoice_lab.polling.backoff import BackoffPoller, BackoffPolicy
from invoice_lab.targets.models import ProtocolKind, Target


class AdapterFactory:
    """Creates the adapter for a resolved target."""

    POLLING_ADAPTERS: ClassVar[dict[ProtocolKind, type[PollingAdapter]]] = {
        ProtocolKind.TASK_POLL: TaskPollAdapter,
        ProtocolKind.TRANSACTION_POLL: TransactionPollAdapter,
    }

    def __init__(
        self,
        settings: Settings,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    def create(self, target: Target) -> BaseExtractionAdapter:
        """Create an adapter wired with a poller built from settings."""
        log = Log.bind(target=target.id, protocol=target.protocol.value)
        if target.protocol is ProtocolKind.JSONRPC_TOOL:
            session = JsonRpcSession(
                target.base_url,
                timeout_seconds=target.timeout_seconds or self._settings.jsonrpc_timeout_seconds,
                initialize_timeout_cap_seconds=self._settings.jsonrpc_initialize_timeout_cap_seconds,
                client=httpx.Client(transport=self._transport),
                log=log,
            )
            return JsonRpcToolAdapter(
                session=session,
                poller=self.build_poller(max_attempts=1),
                log=log,
            )

        adapter_cls = self.POLLING_ADAPTERS.get(target.protocol)
        if adapter_cls is None:
            raise ValueError(
                f"Unknown protocol '{target.protocol}'. Choose from: "
                f"{[kind.value for kind in ProtocolKind]}"
            )
        timeout = target.timeout_seconds or self._settings.request_timeout_seconds
        return adapter_cls(
            base_url=target.base_url,
            api_key=target.credential,
            timeout_seconds=timeout,
            poller=self.build_poller(),
            client=httpx.Client(
                base_url=target.base_url.rstrip("/"),
                timeout=timeout,
                transport=self._transport,
            ),
            log=log,
        )

    def build_poller(self, max_attempts: int | None = None) -> BackoffPoller:
        return BackoffPoller(
            BackoffPolicy.from_settings(self._settings),
            max_attempts or self._settings.poll_max_attempts,
            log=Log.bind(component="poller"),
        )

    def connection_check_timeout(self, target: Target) -> float:
        if target.protocol is ProtocolKind.JSONRPC_TOOL:
            return self._settings.jsonrpc_connection_check_timeout_seconds
        return self._settings.connection_check_timeout_seconds
