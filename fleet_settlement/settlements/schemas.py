# fleet_settlement/settlements/schemas.py

from datetime import date
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from fleet_settlement.ledger.models import TransactionType
from fleet_settlement.obligations.models import ObligationClass
from fleet_settlement.obligations.schemas import RedirectedSettlement
from fleet_settlement.settlements.exceptions import InvalidInstructionError, PartialBatchFailure
from fleet_settlement.waterfall.schemas import WaterfallComponent


# --- Commands ---

class SettleObligationsCommand(BaseModel):
    """Settle the given positions of one vehicle's EMI or rent queue."""
    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    obligation_class: ObligationClass
    indices: Tuple[int, ...]
    penalties: Dict[int, Any] = Field(default_factory=dict)


class ApplyWaterfallPaymentCommand(BaseModel):
    """Pay one waterfall component for the given months of a year."""
    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    component: WaterfallComponent
    year: int
    months: Tuple[int, ...]


SettlementCommand = Union[SettleObligationsCommand, ApplyWaterfallPaymentCommand]


class SettlementInstruction(BaseModel):
    """
    One item of a settlement batch as callers submit it. Names a vehicle and
    either obligation indices (with optional penalties) or a waterfall
    component with the months it should pay.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True, json_schema_extra={
        "examples": [
            {"entityId": "VEH-1001", "obligationClass": "emi", "obligationIndices": [0, 1], "penalties": {"0": "150"}},
            {"entityId": "VEH-1001", "waterfallComponent": "gst", "year": 2025, "selectedMonths": [1, 2, 3]},
        ]
    })

    entity_id: str = Field(..., alias="entityId")
    obligation_class: ObligationClass = Field(ObligationClass.EMI, alias="obligationClass")
    obligation_indices: Optional[List[int]] = Field(None, alias="obligationIndices")
    waterfall_component: Optional[WaterfallComponent] = Field(None, alias="waterfallComponent")
    year: Optional[int] = None
    selected_months: Optional[List[int]] = Field(None, alias="selectedMonths")
    penalties: Dict[int, Any] = Field(default_factory=dict)

    def to_command(self) -> SettlementCommand:
        """Raises InvalidInstructionError when the instruction is malformed."""
        has_indices = bool(self.obligation_indices)
        has_component = self.waterfall_component is not None
        if has_indices == has_component:
            raise InvalidInstructionError(
                self.entity_id, "exactly one of obligationIndices or waterfallComponent is required"
            )

        if has_indices:
            indices = self.obligation_indices
            if any(i < 0 for i in indices):
                raise InvalidInstructionError(self.entity_id, "obligation indices must be non-negative")
            if len(set(indices)) != len(indices):
                raise InvalidInstructionError(self.entity_id, "obligation indices must be unique")
            return SettleObligationsCommand(
                vehicle_id=self.entity_id,
                obligation_class=self.obligation_class,
                indices=tuple(sorted(indices)),
                penalties=dict(self.penalties),
            )

        if self.year is None:
            raise InvalidInstructionError(self.entity_id, "year is required for a waterfall payment")
        months = self.selected_months or []
        if not months:
            raise InvalidInstructionError(self.entity_id, "selectedMonths is required for a waterfall payment")
        if any(m < 1 or m > 12 for m in months):
            raise InvalidInstructionError(self.entity_id, f"months out of range: {months}")
        return ApplyWaterfallPaymentCommand(
            vehicle_id=self.entity_id,
            component=self.waterfall_component,
            year=self.year,
            months=tuple(sorted(set(months))),
        )


# --- Side-effect intents ---

class LedgerWrite(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_id: str
    transaction_type: TransactionType
    amount: Decimal
    period_key: str
    penalty_amount: Decimal = Decimal("0")
    description: Optional[str] = None


class BalanceDelta(BaseModel):
    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    delta: Decimal


class ObligationPaid(BaseModel):
    model_config = ConfigDict(frozen=True)

    obligation_id: int
    vehicle_id: str
    obligation_class: ObligationClass
    index: int
    period_key: str
    penalty: Decimal = Decimal("0")


class SettlementPlan(BaseModel):
    """What applying one command will write. Produced without touching storage."""
    model_config = ConfigDict(frozen=True)

    ledger_writes: List[LedgerWrite] = Field(default_factory=list)
    balance_deltas: List[BalanceDelta] = Field(default_factory=list)
    obligations_paid: List[ObligationPaid] = Field(default_factory=list)
    redirects: List[RedirectedSettlement] = Field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return sum((w.amount + w.penalty_amount for w in self.ledger_writes), Decimal("0"))


# --- Results ---

class BatchItemResult(BaseModel):
    position: int
    entity_id: str
    success: bool
    transaction_ids: List[str] = Field(default_factory=list)
    redirects: List[RedirectedSettlement] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    error: Optional[str] = None
    error_type: Optional[str] = None


class BatchResult(BaseModel):
    """
    Outcome of a best-effort batch. Failed items left no trace in the
    ledger; successful ones stay applied regardless of later failures.
    """
    batch_id: str
    success_count: int = 0
    failure_count: int = 0
    applied_transactions: List[str] = Field(default_factory=list)
    items: List[BatchItemResult] = Field(default_factory=list)
    redirects: List[RedirectedSettlement] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def failures(self) -> List[BatchItemResult]:
        return [item for item in self.items if not item.success]

    def raise_for_failures(self) -> "BatchResult":
        if self.failure_count:
            raise PartialBatchFailure(self)
        return self


class ObligationSettlementResult(BaseModel):
    """Outcome of settling a single obligation directly."""
    vehicle_id: str
    obligation_class: ObligationClass
    requested_index: int
    settled_index: int
    transaction_id: str
    amount: Decimal
    penalty: Decimal
    redirect: Optional[RedirectedSettlement] = None


class BatchRequest(BaseModel):
    instructions: List[SettlementInstruction] = Field(..., min_length=1)
    today: Optional[date] = Field(None, description="Business date; defaults to the server's today")


class AsyncBatchResponse(BaseModel):
    task_id: str
    status: str = "queued"


# --- Selection state ---

class SettlementSession(BaseModel):
    """
    The caller's in-progress settlement selection: for each vehicle queue,
    the selected obligation positions and the penalties typed against them.
    Immutable; every change returns a new session.
    """
    model_config = ConfigDict(frozen=True)

    selections: Dict[str, Tuple[int, ...]] = Field(default_factory=dict)
    penalties: Dict[str, Dict[int, Any]] = Field(default_factory=dict)

    @staticmethod
    def queue_key(vehicle_id: str, obligation_class: ObligationClass) -> str:
        return f"{vehicle_id}:{ObligationClass(obligation_class).value}"

    def selection_for(self, vehicle_id: str, obligation_class: ObligationClass) -> Tuple[int, ...]:
        return self.selections.get(self.queue_key(vehicle_id, obligation_class), ())

    def penalties_for(self, vehicle_id: str, obligation_class: ObligationClass) -> Dict[int, Any]:
        return dict(self.penalties.get(self.queue_key(vehicle_id, obligation_class), {}))

    def with_selection(
        self, vehicle_id: str, obligation_class: ObligationClass, indices
    ) -> "SettlementSession":
        """Replaces a queue's selection, dropping penalties of unselected obligations."""
        key = self.queue_key(vehicle_id, obligation_class)
        selected = tuple(indices)
        selections = dict(self.selections)
        penalties = dict(self.penalties)
        if selected:
            selections[key] = selected
        else:
            selections.pop(key, None)

        kept = {i: v for i, v in penalties.get(key, {}).items() if i in selected}
        if kept:
            penalties[key] = kept
        else:
            penalties.pop(key, None)
        return SettlementSession(selections=selections, penalties=penalties)

    def with_penalty(
        self, vehicle_id: str, obligation_class: ObligationClass, index: int, raw_penalty: Any
    ) -> "SettlementSession":
        key = self.queue_key(vehicle_id, obligation_class)
        penalties = dict(self.penalties)
        queue_penalties = dict(penalties.get(key, {}))
        queue_penalties[index] = raw_penalty
        penalties[key] = queue_penalties
        return SettlementSession(selections=dict(self.selections), penalties=penalties)

    def to_instructions(self) -> List[SettlementInstruction]:
        """One obligation instruction per queue with a non-empty selection."""
        instructions = []
        for key, indices in self.selections.items():
            vehicle_id, _, class_value = key.rpartition(":")
            instructions.append(
                SettlementInstruction(
                    entity_id=vehicle_id,
                    obligation_class=ObligationClass(class_value),
                    obligation_indices=list(indices),
                    penalties=dict(self.penalties.get(key, {})),
                )
            )
        return instructions


class SingleSettlementRequest(BaseModel):
    """Direct settlement of one obligation, outside any selection."""
    model_config = ConfigDict(populate_by_name=True)

    vehicle_id: str = Field(..., alias="vehicleId")
    obligation_class: ObligationClass = Field(ObligationClass.EMI, alias="obligationClass")
    index: int = Field(..., ge=0)
    penalty: Optional[Any] = None
    today: Optional[date] = None


class SelectionAction(str, PyEnum):
    TOGGLE = "toggle"
    SELECT_ALL = "select_all"
    SET_PENALTY = "set_penalty"


class SelectionRequest(BaseModel):
    """A change to the caller's selection on one obligation queue."""
    session: SettlementSession = Field(default_factory=SettlementSession)
    action: SelectionAction
    index: Optional[int] = Field(None, ge=0, description="Target obligation for toggle / set_penalty")
    penalty: Optional[Any] = None
    today: Optional[date] = None


class SelectionResponse(BaseModel):
    session: SettlementSession
    selected: List[int]
    instructions: List[SettlementInstruction]
