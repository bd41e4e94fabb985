"""
In-memory reference ledger.

Implements `LedgerClient` against local state, enforcing the verifying side
of the off-chain protocol the way the Parrot runtime does:

    delegated transfer   signature over canonical bytes -> signer nonce ==
                         embedded nonce -> fee from origin -> amount from
                         signer -> signer nonce += 1
    swap                 signature -> nonce -> offerer holds offered amount
                         -> origin holds requested amount -> both legs
                         -> signer nonce += 1

Every accepted extrinsic also bumps the origin's own nonce and charges it a
flat fee. A rejected extrinsic leaves state untouched: no fee, no nonce
change, no partial legs.

Also carries the plain (non-delegated) operations the client exercises:
native `transfer` and `multi_transfer`, and PRC20 fungible tokens
(`create_token`, `transfer_token`, `approve_token`, `transfer_token_from`).

State mutation happens without any await in between, so each extrinsic is
atomic with respect to other tasks on the same event loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from parrot.codec import blake2b_256, encode_u32, to_hex
from parrot.keys import Identity, KeyHandle, verify_signature
from parrot.offchain.envelope import SignedOffer, SignedTransfer, encode_envelope
from parrot.offchain.errors import NetworkError, classify_rejection
from parrot.offchain.hardening import Validators
from parrot.offchain.ledger import LedgerResponse
from parrot.offchain.observability import OffchainLayer, get_logger

logger = get_logger("memory", OffchainLayer.LEDGER)

DEFAULT_TRANSACTION_FEE = 10


@dataclass(frozen=True)
class LedgerEvent:
    """An event deposited by an accepted extrinsic."""
    block: int
    name: str
    data: Tuple[Any, ...] = field(default_factory=tuple)


class _Rejected(Exception):
    """Internal: dispatch failed with a runtime reason string."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class InMemoryLedger:
    """
    Reference ledger for tests and local development.

    Example:
        ledger = InMemoryLedger(genesis={alice.identity: 10_000})
        async with ledger_session(ledger):
            receipt = await Submitter(ledger, alice).submit(signed)
    """

    def __init__(
        self,
        genesis: Optional[Dict[Any, int]] = None,
        transaction_fee: int = DEFAULT_TRANSACTION_FEE,
    ):
        Validators.validate_amount(transaction_fee, "transaction_fee").raise_if_invalid()
        self.transaction_fee = transaction_fee
        self._balances: Dict[bytes, int] = {}
        self._nonces: Dict[bytes, int] = {}
        self._token_balances: Dict[Tuple[int, bytes], int] = {}
        self._total_supply: Dict[int, int] = {}
        self._allowances: Dict[Tuple[int, bytes, bytes], int] = {}
        self._token_count = 0
        self._block = 0
        self._events: List[LedgerEvent] = []
        self._connected = False
        self._fail_next = 0

        for who, amount in (genesis or {}).items():
            self.endow(who, amount)

    # -- connection lifecycle ------------------------------------------------

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False

    def fail_next(self, count: int = 1) -> None:
        """Make the next `count` round trips fail as undeliverable."""
        self._fail_next += count

    def _reach(self, operation: str) -> None:
        if not self._connected:
            raise NetworkError(operation, "Ledger client is not connected")
        if self._fail_next > 0:
            self._fail_next -= 1
            raise ConnectionError(f"injected transport failure during {operation}")

    # -- genesis / inspection ------------------------------------------------

    def endow(self, who: Any, amount: int) -> None:
        """Credit native balance outside of any extrinsic (genesis funding)."""
        Validators.validate_amount(amount).raise_if_invalid()
        key = Identity.parse(who).public_key
        self._balances[key] = self._balances.get(key, 0) + amount

    @property
    def block_number(self) -> int:
        return self._block

    @property
    def events(self) -> List[LedgerEvent]:
        return list(self._events)

    def token_count(self) -> int:
        return self._token_count

    def total_supply(self, token_id: int) -> int:
        return self._total_supply.get(token_id, 0)

    # -- queries -------------------------------------------------------------

    async def query_nonce(self, identity: Identity) -> int:
        self._reach("query_nonce")
        return self._nonces.get(Identity.parse(identity).public_key, 0)

    async def query_balance(self, identity: Identity, token_id: Optional[int] = None) -> int:
        self._reach("query_balance")
        key = Identity.parse(identity).public_key
        if token_id is None:
            return self._balances.get(key, 0)
        return self._token_balances.get((token_id, key), 0)

    async def query_allowance(self, owner: Identity, spender: Identity, token_id: int) -> int:
        self._reach("query_allowance")
        o = Identity.parse(owner).public_key
        s = Identity.parse(spender).public_key
        return self._allowances.get((token_id, o, s), 0)

    # -- off-chain authorized entry points -------------------------------------

    async def submit_delegated_transfer(self, origin: KeyHandle, envelope: SignedTransfer) -> LedgerResponse:
        self._reach("submit_delegated_transfer")
        if not isinstance(envelope, SignedTransfer):
            raise TypeError(f"expected SignedTransfer, got {type(envelope).__name__}")
        auth = envelope.authorization
        signer = envelope.signer.public_key

        def dispatch() -> None:
            self._check_signature(envelope)
            self._check_nonce(envelope)
            self._debit(signer, auth.amount, "InsufficientBalance")
            self._credit(auth.destination.public_key, auth.amount)
            self._nonces[signer] = self._nonces.get(signer, 0) + 1
            self._deposit("DelegatedTransfer", origin.identity.address, envelope.signer.address,
                          auth.destination.address, auth.amount)

        return self._apply(origin, encode_envelope(envelope), dispatch)

    async def submit_swap(self, origin: KeyHandle, envelope: SignedOffer) -> LedgerResponse:
        self._reach("submit_swap")
        if not isinstance(envelope, SignedOffer):
            raise TypeError(f"expected SignedOffer, got {type(envelope).__name__}")
        offer = envelope.authorization
        maker = envelope.signer.public_key
        taker = origin.identity.public_key

        def dispatch() -> None:
            self._check_signature(envelope)
            self._check_nonce(envelope)
            if self._token_balances.get((offer.offered_token, maker), 0) < offer.offered_amount:
                raise _Rejected("Offerer does not have enough tokens")
            if self._token_balances.get((offer.requested_token, taker), 0) < offer.requested_amount:
                raise _Rejected("Requestor does not have enough tokens")
            self._move_tokens(offer.offered_token, maker, taker, offer.offered_amount)
            self._move_tokens(offer.requested_token, taker, maker, offer.requested_amount)
            self._nonces[maker] = self._nonces.get(maker, 0) + 1
            self._deposit("Swap", offer.offered_token, offer.offered_amount, offer.requested_token,
                          offer.requested_amount, envelope.signer.address, origin.identity.address)

        return self._apply(origin, encode_envelope(envelope), dispatch)

    # -- plain extrinsics ----------------------------------------------------

    async def transfer(self, origin: KeyHandle, to: Any, amount: int) -> str:
        self._reach("transfer")
        Validators.validate_amount(amount).raise_if_invalid()
        dest = Identity.parse(to).public_key
        sender = origin.identity.public_key

        def dispatch() -> None:
            self._debit(sender, amount, "InsufficientBalance")
            self._credit(dest, amount)
            self._deposit("Transfer", origin.identity.address, Identity(dest).address, amount)

        return self._unwrap(self._apply(origin, b"transfer" + dest + amount.to_bytes(16, "little"), dispatch))

    async def multi_transfer(self, origin: KeyHandle, transfers: Iterable[Tuple[Any, int]]) -> List[Tuple[Identity, int, bool]]:
        """Run several native transfers; a failed item does not stop later ones."""
        self._reach("multi_transfer")
        items = [(Identity.parse(to), amount) for to, amount in transfers]
        sender = origin.identity.public_key
        statuses: List[Tuple[Identity, int, bool]] = []

        def dispatch() -> None:
            for _, amount in items:
                Validators.validate_amount(amount).raise_if_invalid()
                if amount == 0:
                    raise _Rejected("transfer amount should be non-zero")
            for dest, amount in items:
                ok = self._balances.get(sender, 0) >= amount
                if ok:
                    self._debit(sender, amount, "InsufficientBalance")
                    self._credit(dest.public_key, amount)
                statuses.append((dest, amount, ok))
            self._deposit("MultiTransfer", tuple((d.address, a, ok) for d, a, ok in statuses))

        payload = b"multi_transfer" + b"".join(d.public_key + a.to_bytes(16, "little") for d, a in items)
        self._unwrap(self._apply(origin, payload, dispatch))
        return statuses

    async def create_token(self, origin: KeyHandle, total_supply: int) -> int:
        """Mint a new PRC20 token; the creator receives the whole supply."""
        self._reach("create_token")
        Validators.validate_amount(total_supply, "total_supply").raise_if_invalid()
        creator = origin.identity.public_key
        token_id = self._token_count

        def dispatch() -> None:
            self._token_balances[(token_id, creator)] = total_supply
            self._total_supply[token_id] = total_supply
            self._token_count = token_id + 1
            self._deposit("NewToken", token_id, origin.identity.address, total_supply)

        self._unwrap(self._apply(origin, b"create_token" + total_supply.to_bytes(16, "little"), dispatch))
        return token_id

    async def transfer_token(self, origin: KeyHandle, to: Any, token_id: int, amount: int) -> str:
        self._reach("transfer_token")
        Validators.validate_amount(amount).raise_if_invalid()
        dest = Identity.parse(to).public_key
        sender = origin.identity.public_key

        def dispatch() -> None:
            if amount == 0:
                raise _Rejected("transfer amount should be non-zero")
            if self._token_balances.get((token_id, sender), 0) < amount:
                raise _Rejected("user does not have enough tokens")
            self._move_tokens(token_id, sender, dest, amount)
            self._deposit("TokenTransfer", token_id, origin.identity.address, Identity(dest).address, amount)

        return self._unwrap(self._apply(origin, b"transfer_token" + dest + amount.to_bytes(16, "little"), dispatch))

    async def approve_token(self, origin: KeyHandle, spender: Any, token_id: int, amount: int) -> str:
        self._reach("approve_token")
        Validators.validate_amount(amount).raise_if_invalid()
        owner = origin.identity.public_key
        spender_key = Identity.parse(spender).public_key

        def dispatch() -> None:
            if (token_id, owner) not in self._token_balances:
                raise _Rejected("Account does not own this token")
            self._allowances[(token_id, owner, spender_key)] = amount
            self._deposit("Approval", token_id, origin.identity.address, Identity(spender_key).address, amount)

        return self._unwrap(self._apply(origin, b"approve" + spender_key + amount.to_bytes(16, "little"), dispatch))

    async def transfer_token_from(
        self, origin: KeyHandle, owner: Any, to: Any, token_id: int, amount: int
    ) -> str:
        """Move an owner's tokens using the allowance granted to `origin`."""
        self._reach("transfer_token_from")
        Validators.validate_amount(amount).raise_if_invalid()
        owner_key = Identity.parse(owner).public_key
        dest = Identity.parse(to).public_key
        spender = origin.identity.public_key

        def dispatch() -> None:
            key = (token_id, owner_key, spender)
            if key not in self._allowances:
                raise _Rejected("Allowance does not exist.")
            if self._allowances[key] < amount:
                raise _Rejected("Not enough allowance.")
            if self._token_balances.get((token_id, owner_key), 0) < amount:
                raise _Rejected("user does not have enough tokens")
            self._allowances[key] -= amount
            self._move_tokens(token_id, owner_key, dest, amount)
            self._deposit("TokenTransfer", token_id, Identity(owner_key).address, Identity(dest).address, amount)

        payload = b"transfer_from" + owner_key + dest + amount.to_bytes(16, "little")
        return self._unwrap(self._apply(origin, payload, dispatch))

    # -- internals -----------------------------------------------------------

    def _check_signature(self, envelope: Any) -> None:
        payload = envelope.authorization.encode()
        if not verify_signature(envelope.signer, payload, envelope.signature):
            raise _Rejected("InvalidSignature")

    def _check_nonce(self, envelope: Any) -> None:
        if self._nonces.get(envelope.signer.public_key, 0) != envelope.authorization.nonce:
            raise _Rejected("IncorrectNonce")

    def _debit(self, who: bytes, amount: int, reason: str) -> None:
        balance = self._balances.get(who, 0)
        if balance < amount:
            raise _Rejected(reason)
        self._balances[who] = balance - amount

    def _credit(self, who: bytes, amount: int) -> None:
        self._balances[who] = self._balances.get(who, 0) + amount

    def _move_tokens(self, token_id: int, src: bytes, dst: bytes, amount: int) -> None:
        self._token_balances[(token_id, src)] = self._token_balances.get((token_id, src), 0) - amount
        self._token_balances[(token_id, dst)] = self._token_balances.get((token_id, dst), 0) + amount

    def _deposit(self, name: str, *data: Any) -> None:
        self._events.append(LedgerEvent(self._block + 1, name, tuple(data)))

    def _snapshot(self) -> Tuple[Any, ...]:
        return (
            dict(self._balances),
            dict(self._nonces),
            dict(self._token_balances),
            dict(self._total_supply),
            dict(self._allowances),
            self._token_count,
            len(self._events),
        )

    def _restore(self, snap: Tuple[Any, ...]) -> None:
        (self._balances, self._nonces, self._token_balances, self._total_supply,
         self._allowances, self._token_count, n_events) = snap
        del self._events[n_events:]

    def _apply(self, origin: KeyHandle, payload: bytes, dispatch: Any) -> LedgerResponse:
        """Charge the fee, run `dispatch`, and commit or roll back as one unit."""
        who = origin.identity.public_key
        tx_hash = to_hex(blake2b_256(who + encode_u32(self._block) + payload))
        snap = self._snapshot()
        try:
            self._debit(who, self.transaction_fee, "Payment")
            dispatch()
        except _Rejected as rejection:
            self._restore(snap)
            logger.info("Extrinsic rejected", tx_hash=tx_hash, reason=rejection.reason,
                        origin=origin.identity.address)
            return LedgerResponse(tx_hash=tx_hash, accepted=False, reason=rejection.reason)
        except Exception:
            self._restore(snap)
            raise

        self._nonces[who] = self._nonces.get(who, 0) + 1
        self._block += 1
        logger.debug("Extrinsic applied", tx_hash=tx_hash, block=self._block,
                     origin=origin.identity.address, fee=self.transaction_fee)
        return LedgerResponse(tx_hash=tx_hash, accepted=True, fee=self.transaction_fee)

    @staticmethod
    def _unwrap(response: LedgerResponse) -> str:
        if not response.accepted:
            raise classify_rejection(response.reason, tx_hash=response.tx_hash)
        return response.tx_hash
