"""Enveloping relay client base interface."""

from abc import ABC, abstractmethod

from .types import (
    EnvelopingTxRequest,
    RelayEstimation,
    RelayingResult,
    RequestConfig,
    UserDefinedEnvelopingRequest,
)


class EnvelopingClientBase(ABC):
    """Enveloping relay client interface."""

    @abstractmethod
    def relay_transaction(
        self,
        request: UserDefinedEnvelopingRequest,
        request_config: RequestConfig | None = None,
        signer_key: str | None = None,
    ) -> RelayingResult:
        pass

    @abstractmethod
    def estimate_transaction(
        self,
        request: UserDefinedEnvelopingRequest,
        request_config: RequestConfig | None = None,
        signer_key: str | None = None,
    ) -> RelayEstimation:
        pass

    @abstractmethod
    def estimate_max_possible_gas(
        self,
        tx_request: EnvelopingTxRequest,
        relay_worker: str,
        request_config: RequestConfig | None = None,
    ) -> int:
        pass

    @abstractmethod
    def get_smart_wallet_address(self, owner: str, index: int, recoverer: str | None = None) -> str:
        pass

    @abstractmethod
    def is_smart_wallet_owner(self, smart_wallet: str, owner: str) -> bool:
        pass

    @abstractmethod
    def connect(self) -> None:
        pass

    @abstractmethod
    def disconnect(self) -> None:
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        pass
