from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator

from loguru import logger

from vrf_oracle.errors import (
    AccountNotFound,
    ConfirmationTimeout,
    PreflightFailure,
    RpcTransportError,
    SubscriptionSetupError,
    TransactionRejected,
    VrfOracleError,
)
from vrf_oracle.execution.submitter import RETRYABLE_REJECTIONS, SignatureStatus, rejection_kind


@dataclass(frozen=True)
class LogNotification:
    signature: str
    err: Any
    logs: list[str]


@dataclass(frozen=True)
class SignatureInfo:
    signature: str
    err: Any


def to_ws_url(rpc_url: str) -> str:
    return rpc_url.replace("https://", "wss://").replace("http://", "ws://")


def translate_rpc_error(err: Exception) -> Exception:
    """Map solana-py / transport exceptions onto the service's error taxonomy."""
    if isinstance(err, VrfOracleError):
        return err

    import httpx
    from solana.exceptions import SolanaRpcException  # type: ignore
    from solana.rpc.core import RPCException, UnconfirmedTxError  # type: ignore

    if isinstance(
        err,
        (SolanaRpcException, UnconfirmedTxError, httpx.HTTPError, OSError, asyncio.TimeoutError),
    ):
        return RpcTransportError(str(err))
    if isinstance(err, RPCException):
        payload = err.args[0] if err.args else None
        message = getattr(payload, "message", None) or str(err)
        data = getattr(payload, "data", None)
        tx_err = getattr(data, "err", None)
        logs = getattr(data, "logs", None)
        if tx_err is not None and rejection_kind(tx_err) in RETRYABLE_REJECTIONS:
            return TransactionRejected(rejection_kind(tx_err), message)
        if logs:
            return PreflightFailure(list(logs), message)
        if tx_err is not None:
            return TransactionRejected(rejection_kind(tx_err), message)
        return RpcTransportError(message)
    return err


@dataclass
class SolanaRpc:
    client: Any
    ws_url: str
    commitment: str = "confirmed"

    @classmethod
    def create(cls, rpc_url: str, ws_url: str | None = None, commitment: str = "confirmed") -> SolanaRpc:
        from solana.rpc.async_api import AsyncClient  # type: ignore
        from solana.rpc.commitment import Commitment  # type: ignore

        client = AsyncClient(rpc_url, commitment=Commitment(commitment))
        return cls(client=client, ws_url=ws_url or to_ws_url(rpc_url), commitment=commitment)

    async def _call(self, awaitable):
        try:
            return await awaitable
        except Exception as e:
            raise translate_rpc_error(e) from e

    async def close(self) -> None:
        await self.client.close()

    async def get_account_data(self, address: str) -> bytes:
        from solders.pubkey import Pubkey  # type: ignore

        resp = await self._call(self.client.get_account_info(Pubkey.from_string(address)))
        if resp.value is None:
            raise AccountNotFound(f"account {address} not found")
        return bytes(resp.value.data)

    async def get_latest_blockhash(self) -> str:
        resp = await self._call(self.client.get_latest_blockhash())
        return str(resp.value.blockhash)

    async def send_and_confirm(self, raw_tx: bytes) -> str:
        from solana.rpc.commitment import Commitment  # type: ignore
        from solana.rpc.types import TxOpts  # type: ignore

        commitment = Commitment(self.commitment)
        resp = await self._call(
            self.client.send_raw_transaction(
                raw_tx, opts=TxOpts(skip_confirmation=True, preflight_commitment=commitment)
            )
        )
        signature = resp.value
        try:
            status = await self.client.confirm_transaction(signature, commitment)
        except Exception as e:
            raise ConfirmationTimeout(str(signature), f"Transaction {signature} not confirmed: {e}") from e
        statuses = status.value or []
        tx_err = statuses[0].err if statuses and statuses[0] is not None else None
        if tx_err is not None:
            raise TransactionRejected(rejection_kind(tx_err))
        return str(signature)

    async def get_signature_status(self, signature: str) -> SignatureStatus | None:
        """Status of an earlier broadcast, None while the node has not seen it."""
        from solders.signature import Signature  # type: ignore

        resp = await self._call(
            self.client.get_signature_statuses([Signature.from_string(signature)], search_transaction_history=True)
        )
        statuses = resp.value or []
        status = statuses[0] if statuses else None
        if status is None:
            return None
        return SignatureStatus(signature=signature, err=status.err)

    async def get_signatures_for_address(
        self,
        address: str,
        before: str | None = None,
        limit: int | None = None,
        commitment: str | None = None,
    ) -> list[SignatureInfo]:
        from solana.rpc.commitment import Commitment  # type: ignore
        from solders.pubkey import Pubkey  # type: ignore
        from solders.signature import Signature  # type: ignore

        resp = await self._call(
            self.client.get_signatures_for_address(
                Pubkey.from_string(address),
                before=Signature.from_string(before) if before else None,
                limit=limit,
                commitment=Commitment(commitment or self.commitment),
            )
        )
        return [SignatureInfo(signature=str(s.signature), err=s.err) for s in resp.value or []]

    async def get_transaction_logs(self, signature: str, commitment: str | None = None) -> list[str] | None:
        """Recorded log lines of a successful transaction, None otherwise."""
        from solana.rpc.commitment import Commitment  # type: ignore
        from solders.signature import Signature  # type: ignore

        resp = await self._call(
            self.client.get_transaction(
                Signature.from_string(signature),
                encoding="json",
                commitment=Commitment(commitment or self.commitment),
                max_supported_transaction_version=0,
            )
        )
        tx = resp.value
        meta = tx.transaction.meta if tx is not None else None
        if meta is None or meta.err is not None or meta.log_messages is None:
            return None
        return list(meta.log_messages)

    async def logs_subscribe(self, program_id: str) -> AsyncIterator[LogNotification]:
        from solana.rpc.commitment import Commitment  # type: ignore
        from solana.rpc.websocket_api import connect as ws_connect  # type: ignore
        from solders.pubkey import Pubkey  # type: ignore
        from solders.rpc.config import RpcTransactionLogsFilterMentions  # type: ignore
        from solders.rpc.responses import LogsNotification  # type: ignore

        established = False
        try:
            async with ws_connect(self.ws_url) as websocket:
                await websocket.logs_subscribe(
                    RpcTransactionLogsFilterMentions(Pubkey.from_string(program_id)),
                    commitment=Commitment(self.commitment),
                )
                # subscription confirmation
                await websocket.recv()
                established = True
                logger.info("Listening for logs from: {}", program_id)
                async for messages in websocket:
                    for msg in messages:
                        if not isinstance(msg, LogsNotification):
                            continue
                        value = msg.result.value
                        yield LogNotification(
                            signature=str(value.signature),
                            err=value.err,
                            logs=list(value.logs or []),
                        )
        except Exception as e:
            if not established:
                raise SubscriptionSetupError(f"logs subscribe failed for {program_id}: {e}") from e
            raise RpcTransportError(f"logs stream for {program_id} failed: {e}") from e
