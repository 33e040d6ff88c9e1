"""
ERC20 Token Implementation.

In-process fungible token used as the pool's asset interface:
- Balance queries and transfers
- Allowances (approve / transferFrom) for periphery contracts
- Owner-gated minting
- Transfer and Approval event records

Security features:
- 256-bit range checks on every amount
- Zero address checks
- Balance and allowance underflow prevention
- Per-thread journals so a failed pool operation undoes only its own transfers
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict

from ..exceptions import TokenError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


@dataclass
class TokenEvent:
    """Represents an ERC20 event."""

    event_type: str  # "Transfer" or "Approval"
    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ERC20Token:
    """
    ERC20 token held entirely in memory.

    The pool only relies on ``balance_of`` and ``transfer``; payers and
    periphery contracts additionally use ``approve`` and ``transfer_from``.
    """

    # Token metadata
    name: str
    symbol: str
    decimals: int = 18
    total_supply: int = 0

    # Contract address
    address: str = ""

    # Owner (for minting permissions)
    owner: str = ""

    # State
    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)

    # Event log
    events: list[TokenEvent] = field(default_factory=list)

    # Per-thread journal stacks and the ledger lock
    _journals: threading.local = field(default_factory=threading.local, repr=False, compare=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    # Constants
    UINT256_MAX: int = 2**256 - 1

    def __post_init__(self) -> None:
        """Initialize token after dataclass creation."""
        if not self.address:
            addr_input = f"{self.name}{self.symbol}{time.time()}".encode()
            addr_hash = hashlib.sha3_256(addr_input).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"
        self.address = self._normalize(self.address)

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        """Get the token balance of an account."""
        return self.balances.get(self._normalize(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        """Get the allowance granted by owner to spender."""
        owner_norm = self._normalize(owner)
        spender_norm = self._normalize(spender)
        return self.allowances.get(owner_norm, {}).get(spender_norm, 0)

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Args:
            sender: Address sending tokens
            recipient: Address receiving tokens
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            TokenError: If transfer fails
        """
        sender_norm = self._normalize(sender)
        recipient_norm = self._normalize(recipient)

        self._validate_address(recipient_norm, "recipient")
        self._validate_amount(amount)

        with self._lock:
            sender_balance = self.balances.get(sender_norm, 0)
            if sender_balance < amount:
                raise TokenError(
                    f"ERC20: transfer amount exceeds balance "
                    f"({amount} > {sender_balance})",
                    details={"token": self.symbol, "sender": sender_norm},
                )

            self.balances[sender_norm] = sender_balance - amount
            self.balances[recipient_norm] = self.balances.get(recipient_norm, 0) + amount
            self._record(("transfer", sender_norm, recipient_norm, amount))

            self._emit_transfer(sender_norm, recipient_norm, amount)

        logger.debug(
            "ERC20 transfer",
            extra={
                "event": "erc20.transfer",
                "token": self.symbol,
                "from": sender_norm[:10],
                "to": recipient_norm[:10],
                "amount": amount,
            }
        )

        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """
        Approve spender to spend tokens on behalf of owner.

        Raises:
            TokenError: If approval fails
        """
        owner_norm = self._normalize(owner)
        spender_norm = self._normalize(spender)

        self._validate_address(spender_norm, "spender")
        self._validate_amount(amount)

        with self._lock:
            previous = self.allowance(owner_norm, spender_norm)
            self.allowances.setdefault(owner_norm, {})[spender_norm] = amount
            self._record(("approve", owner_norm, spender_norm, previous))
            self._emit_approval(owner_norm, spender_norm, amount)

        return True

    def transfer_from(
        self, spender: str, from_addr: str, to_addr: str, amount: int
    ) -> bool:
        """
        Transfer tokens using an allowance.

        Args:
            spender: Address executing transfer
            from_addr: Token owner
            to_addr: Recipient
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            TokenError: If allowance or balance is insufficient
        """
        spender_norm = self._normalize(spender)
        from_norm = self._normalize(from_addr)
        to_norm = self._normalize(to_addr)

        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        with self._lock:
            current_allowance = self.allowance(from_norm, spender_norm)
            if current_allowance < amount:
                raise TokenError(
                    f"ERC20: insufficient allowance ({current_allowance} < {amount})",
                    details={"token": self.symbol, "owner": from_norm, "spender": spender_norm},
                )

            from_balance = self.balances.get(from_norm, 0)
            if from_balance < amount:
                raise TokenError(
                    f"ERC20: transfer amount exceeds balance ({amount} > {from_balance})",
                    details={"token": self.symbol, "sender": from_norm},
                )

            # Unlimited allowances are never decremented
            if current_allowance != self.UINT256_MAX:
                self.allowances[from_norm][spender_norm] = current_allowance - amount
                self._record(("spend", from_norm, spender_norm, amount))

            self.balances[from_norm] = from_balance - amount
            self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
            self._record(("transfer", from_norm, to_norm, amount))

            self._emit_transfer(from_norm, to_norm, amount)

        return True

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """
        Mint new tokens (owner only).

        Raises:
            TokenError: If minting fails
        """
        self._require_owner(minter)

        to_norm = self._normalize(to)
        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        with self._lock:
            if self.total_supply + amount > self.UINT256_MAX:
                raise TokenError("ERC20: mint would overflow total supply")

            self.total_supply += amount
            self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
            self._record(("transfer", ZERO_ADDRESS, to_norm, amount))

            self._emit_transfer(ZERO_ADDRESS, to_norm, amount)

        logger.info(
            "ERC20 mint",
            extra={
                "event": "erc20.mint",
                "token": self.symbol,
                "to": to_norm[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            }
        )

        return True

    # ==================== Journal ====================

    def begin_journal(self) -> None:
        """
        Start recording this thread's ledger changes.

        Journals nest per thread. Another thread's transfers are never
        recorded here, so undoing a journal cannot touch them.
        """
        self._journal_stack().append([])

    def commit_journal(self) -> None:
        """Discard the innermost journal; its changes become permanent."""
        self._journal_stack().pop()

    def rollback_journal(self) -> None:
        """
        Undo every change recorded in the innermost journal, newest first.

        Reversed transfers are logged as compensating Transfer events.

        Raises:
            TokenError: If a recipient no longer holds what it was sent
        """
        entries = self._journal_stack().pop()
        with self._lock:
            for entry in reversed(entries):
                self._undo(entry)

        if entries:
            logger.debug(
                "ERC20 journal rolled back",
                extra={
                    "event": "erc20.rollback",
                    "token": self.symbol,
                    "entries": len(entries),
                }
            )

    def _journal_stack(self) -> list[list[tuple]]:
        stack = getattr(self._journals, "stack", None)
        if stack is None:
            stack = self._journals.stack = []
        return stack

    def _record(self, entry: tuple) -> None:
        stack = getattr(self._journals, "stack", None)
        if stack:
            stack[-1].append(entry)

    def _undo(self, entry: tuple) -> None:
        kind, account, other, value = entry
        if kind == "approve":
            self.allowances.setdefault(account, {})[other] = value
        elif kind == "spend":
            allowances = self.allowances.setdefault(account, {})
            current = allowances.get(other, 0)
            if current != self.UINT256_MAX:
                allowances[other] = min(current + value, self.UINT256_MAX)
        else:
            held = self.balances.get(other, 0)
            if held < value:
                raise TokenError(
                    f"ERC20: cannot reverse transfer, {other} holds {held} < {value}",
                    details={"token": self.symbol, "from": account, "to": other},
                )
            self.balances[other] = held - value
            if account == ZERO_ADDRESS:
                self.total_supply -= value
            else:
                self.balances[account] = self.balances.get(account, 0) + value
            self._emit_transfer(other, account, value)

    # ==================== Helpers ====================

    def _normalize(self, address: str) -> str:
        """Normalize address to lowercase."""
        return address.lower()

    def _validate_address(self, address: str, field: str) -> None:
        if address == ZERO_ADDRESS or not address:
            raise TokenError(f"ERC20: {field} is zero address")

    def _validate_amount(self, amount: int) -> None:
        if amount < 0:
            raise TokenError("ERC20: amount cannot be negative")
        if amount > self.UINT256_MAX:
            raise TokenError("ERC20: amount exceeds uint256")

    def _require_owner(self, caller: str) -> None:
        if self._normalize(caller) != self._normalize(self.owner):
            raise TokenError("ERC20: caller is not owner")

    def _emit_transfer(self, from_addr: str, to_addr: str, amount: int) -> None:
        self.events.append(
            TokenEvent(
                event_type="Transfer",
                from_address=from_addr,
                to_address=to_addr,
                value=amount,
            )
        )

    def _emit_approval(self, owner: str, spender: str, amount: int) -> None:
        self.events.append(
            TokenEvent(
                event_type="Approval",
                from_address=owner,
                to_address=spender,
                value=amount,
            )
        )

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        """Serialize token state to dictionary."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "total_supply": self.total_supply,
            "address": self.address,
            "owner": self.owner,
            "balances": dict(self.balances),
            "allowances": {k: dict(v) for k, v in self.allowances.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ERC20Token":
        """Deserialize token state from dictionary."""
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            decimals=data.get("decimals", 18),
            total_supply=data.get("total_supply", 0),
            address=data.get("address", ""),
            owner=data.get("owner", ""),
        )
        token.balances = dict(data.get("balances", {}))
        token.allowances = {
            k: dict(v) for k, v in data.get("allowances", {}).items()
        }
        return token
