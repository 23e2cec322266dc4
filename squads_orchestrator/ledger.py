"""Ledger access: the abstract interface and its Solana JSON-RPC implementation."""

import base64
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from urllib3.util.retry import Retry

from .errors import ConfigError, ConfirmationTimeoutError, RpcError, TransactionRejectedError
from .types import AccountInfo

COMMITMENT_ORDER = ["processed", "confirmed", "finalized"]


class Ledger(ABC):
    @abstractmethod
    def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        """Fetch an account, or None when it does not exist"""
        pass

    @abstractmethod
    def get_latest_blockhash(self) -> Hash:
        pass

    @abstractmethod
    def send_transaction(self, transaction: Transaction) -> str:
        """Submit a signed transaction and return its signature"""
        pass

    @abstractmethod
    def confirm_transaction(self, signature: str) -> None:
        """Block until the signature reaches the configured commitment"""
        pass


class RpcLedger(Ledger):
    def __init__(
        self,
        endpoint: str,
        commitment: str = "confirmed",
        timeout: float = 30,
        confirm_timeout: float = 60,
        poll_interval: float = 1.0,
        http_retries: int = 0,
    ):
        if commitment not in COMMITMENT_ORDER:
            raise ConfigError(f"Unknown commitment {commitment!r}, expected one of: {', '.join(COMMITMENT_ORDER)}")
        self.endpoint = endpoint
        self.commitment = commitment
        self.timeout = timeout
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval

        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "squads-orchestrator/1.0"})
        retry_cfg = Retry(total=http_retries, backoff_factor=0.5,
                          status_forcelist=(429, 500, 502, 503, 504),
                          allowed_methods=frozenset(["POST"]))
        adapter = HTTPAdapter(max_retries=retry_cfg)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    @classmethod
    def from_settings(cls, settings) -> "RpcLedger":
        return cls(
            settings.rpc_url,
            commitment=settings.commitment,
            timeout=settings.http_timeout,
            confirm_timeout=settings.confirm_timeout,
            poll_interval=settings.poll_interval,
            http_retries=settings.http_retries,
        )

    def _post(self, method: str, params: list) -> dict:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params,
        }
        logging.debug(f"RPC {method}")
        response = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def rpc_request(self, method: str, params: list):
        """Make a JSON-RPC request and return its `result`."""
        result = self._post(method, params)
        if "error" in result:
            error = result["error"]
            raise RpcError(f"RPC error: {error.get('message', error)}", code=error.get("code"))
        return result.get("result")

    def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        result = self.rpc_request("getAccountInfo", [
            str(address),
            {"encoding": "base64", "commitment": self.commitment}
        ])
        value = result.get("value") if result else None
        if not value:
            return None
        data = value.get("data", [])
        raw = base64.b64decode(data[0]) if isinstance(data, list) and data else b""
        return AccountInfo(
            owner=value.get("owner"),
            lamports=value.get("lamports", 0),
            data=raw,
            executable=value.get("executable", False),
        )

    def get_latest_blockhash(self) -> Hash:
        result = self.rpc_request("getLatestBlockhash", [{"commitment": self.commitment}])
        return Hash.from_string(result["value"]["blockhash"])

    def send_transaction(self, transaction: Transaction) -> str:
        encoded = base64.b64encode(bytes(transaction)).decode()
        result = self._post("sendTransaction", [
            encoded,
            {"encoding": "base64", "preflightCommitment": self.commitment}
        ])
        if "error" in result:
            error = result["error"]
            data = error.get("data") or {}
            if isinstance(data, dict) and data.get("err") is not None:
                raise TransactionRejectedError(
                    error.get("message", "Transaction rejected"),
                    err=data["err"],
                    logs=data.get("logs") or [],
                    signature=str(transaction.signatures[0]),
                )
            raise RpcError(f"RPC error: {error.get('message', error)}", code=error.get("code"))
        return result["result"]

    def get_signature_status(self, signature: str) -> Optional[dict]:
        result = self.rpc_request("getSignatureStatuses", [[signature], {"searchTransactionHistory": False}])
        statuses = result.get("value") if result else None
        return statuses[0] if statuses else None

    def confirm_transaction(self, signature: str) -> None:
        wanted = COMMITMENT_ORDER.index(self.commitment)
        deadline = time.monotonic() + self.confirm_timeout
        while True:
            status = self.get_signature_status(signature)
            if status:
                if status.get("err") is not None:
                    raise TransactionRejectedError(
                        f"Transaction {signature} failed", err=status["err"], signature=signature
                    )
                reached = status.get("confirmationStatus")
                if reached in COMMITMENT_ORDER and COMMITMENT_ORDER.index(reached) >= wanted:
                    logging.debug(f"{signature} reached {reached}")
                    return
            if time.monotonic() >= deadline:
                raise ConfirmationTimeoutError(signature, self.confirm_timeout)
            time.sleep(self.poll_interval)
