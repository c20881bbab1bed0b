"""
Self-healing query correction.

Gives a rejected or unproductive query exactly one chance to be repaired by
the reasoning collaborator. A proposal is only accepted when it keeps the
structure of the original query and only renames invalid fields.
"""

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError

from query_guard.core.errors import CorrectionRejected
from query_guard.core.interfaces import IReasoningClient
from query_guard.core.logger import get_logger
from query_guard.core.models import (
    KEYED_OPERATIONS,
    CorrectionProposal,
    CorrectionRequest,
    FieldMeta,
    FieldType,
    InvalidFieldsOutcome,
    Operation,
    QueryRequest,
    QueryResult,
    SchemaRequiredOutcome,
    ValidationOutcome,
    ValidOutcome,
)
from query_guard.correction.policy import ResultPolicy
from query_guard.execution.executor import QueryExecutor
from query_guard.query.predicates import (
    iter_fields,
    iter_pipeline_fields,
    iter_source_field_refs,
    pipeline_shape,
    predicate_shape,
)
from query_guard.query.validator import QueryValidator, is_known_field, referenced_fields

logger = get_logger(__name__)


class HealingResult(BaseModel):
    """Outcome of a self-healing run."""

    outcome: ValidationOutcome
    result: Optional[QueryResult] = None
    corrected: bool = False
    proposal: Optional[CorrectionProposal] = None
    rejection_reason: Optional[str] = None
    original_result: Optional[QueryResult] = None


def _constraint_fields(request: QueryRequest) -> List[str]:
    """Fields constrained by the predicate or pipeline, without the key."""
    if request.operation == Operation.AGGREGATE:
        names = list(iter_pipeline_fields(request.pipeline, source_only=True))
        names.extend(iter_source_field_refs(request.pipeline))
    else:
        names = list(iter_fields(request.predicate or {}))
    return list(dict.fromkeys(names))


def apply_proposal(request: QueryRequest, proposal: CorrectionProposal) -> QueryRequest:
    """
    Build the corrected request.

    Parts missing from the proposal keep their original value.

    Raises:
        CorrectionRejected: the corrected request is malformed
    """
    data = request.model_dump()
    if request.operation == Operation.AGGREGATE:
        if proposal.pipeline is not None:
            data["pipeline"] = proposal.pipeline
    elif proposal.predicate is not None:
        data["predicate"] = proposal.predicate
    if request.operation in KEYED_OPERATIONS and proposal.key:
        data["key"] = proposal.key
    if proposal.projection is not None and request.projection is not None:
        data["projection"] = proposal.projection
    if proposal.sort is not None and request.sort is not None:
        data["sort"] = proposal.sort

    try:
        return QueryRequest.model_validate(data)
    except ValidationError as e:
        raise CorrectionRejected(f"proposal is not a valid request: {e}") from e


def check_invariants(
    original: QueryRequest,
    corrected: QueryRequest,
    type_map: Dict[str, FieldType],
) -> None:
    """
    Check that a corrected request only renames invalid fields.

    Raises:
        CorrectionRejected: with the first broken rule as reason
    """
    original_fields = referenced_fields(original)
    corrected_fields = referenced_fields(corrected)

    unknown = [f for f in corrected_fields if not is_known_field(f, type_map)]
    if unknown:
        raise CorrectionRejected(f"proposal references unknown fields: {unknown}")

    kept = [f for f in original_fields if is_known_field(f, type_map)]
    dropped = [f for f in kept if f not in corrected_fields]
    if dropped:
        raise CorrectionRejected(f"proposal dropped valid fields: {dropped}")

    before, after = len(_constraint_fields(original)), len(_constraint_fields(corrected))
    if before != after:
        raise CorrectionRejected(
            f"proposal changed the number of constrained fields ({before} -> {after})"
        )

    if original.operation == Operation.AGGREGATE:
        if pipeline_shape(original.pipeline) != pipeline_shape(corrected.pipeline):
            raise CorrectionRejected("proposal changed the pipeline stages")
    elif predicate_shape(original.predicate) != predicate_shape(corrected.predicate):
        raise CorrectionRejected("proposal changed the predicate structure")

    if original.operation in KEYED_OPERATIONS:
        if is_known_field(original.key, type_map) and corrected.key != original.key:
            raise CorrectionRejected(
                f"proposal replaced valid key '{original.key}' with '{corrected.key}'"
            )


class SelfHealingCorrector:
    """
    Runs validate -> execute with one bounded correction attempt.

    Triggers:
        - the validator rejects the request for unknown fields
        - a valid request returns an unproductive result (see ResultPolicy)
    """

    def __init__(
        self,
        validator: QueryValidator,
        executor: QueryExecutor,
        reasoning_client: Optional[IReasoningClient] = None,
        policy: Optional[ResultPolicy] = None,
        enabled: bool = True,
    ):
        """
        Initialize self-healing corrector.

        Args:
            validator: Validator used for the original and corrected requests
            executor: Executor used for the original and corrected requests
            reasoning_client: Collaborator proposing corrections. Without one
                              the corrector only validates and executes.
            policy: Rules for unproductive results
            enabled: Set False to disable correction entirely
        """
        self.validator = validator
        self.executor = executor
        self.reasoning_client = reasoning_client
        self.policy = policy or ResultPolicy()
        self.enabled = enabled

    def run(self, request: QueryRequest) -> HealingResult:
        """
        Validate, execute and correct at most once.

        Args:
            request: Query request

        Returns:
            HealingResult; ``corrected`` is True when a proposal was accepted
        """
        outcome = self.validator.validate(request)
        if isinstance(outcome, SchemaRequiredOutcome):
            return HealingResult(outcome=outcome)
        if isinstance(outcome, InvalidFieldsOutcome):
            return self.correct(request, outcome)

        result = self.executor.execute(request, outcome)
        if not self.policy.is_unproductive(result):
            return HealingResult(outcome=outcome, result=result)
        logger.info(
            "Unproductive %s on %s, attempting correction",
            request.operation.value,
            request.collection,
        )
        return self.correct(request, outcome, result)

    def correct(
        self,
        request: QueryRequest,
        outcome: Union[ValidOutcome, InvalidFieldsOutcome],
        original_result: Optional[QueryResult] = None,
    ) -> HealingResult:
        """
        Ask for one correction and execute it if it is acceptable.

        Args:
            request: The original request
            outcome: Its validation outcome
            original_result: Result of executing the original, if it was valid

        Returns:
            HealingResult. On rejection the original outcome and result are
            returned unchanged together with the rejection reason.
        """
        fallback = HealingResult(
            outcome=outcome, result=original_result, original_result=original_result
        )
        if not self.enabled or self.reasoning_client is None:
            return fallback

        resolved = self.validator.resolve_schema(request)
        if resolved is None:
            return fallback
        type_map, fields = resolved

        correction_request = self.build_request(request, outcome, type_map, fields)
        proposal: Optional[CorrectionProposal] = None
        try:
            proposal = self.reasoning_client.propose(correction_request)
            if proposal is None:
                raise CorrectionRejected("reasoning collaborator returned no proposal")
            corrected_request = apply_proposal(request, proposal)
            check_invariants(request, corrected_request, type_map)
        except CorrectionRejected as e:
            logger.warning(
                "Correction for %s rejected: %s", request.collection, e.reason
            )
            return fallback.model_copy(
                update={"proposal": proposal, "rejection_reason": e.reason}
            )

        new_outcome = self.validator.validate(corrected_request)
        if not isinstance(new_outcome, ValidOutcome):
            logger.warning("Corrected query on %s still invalid", request.collection)
            return HealingResult(
                outcome=new_outcome,
                corrected=True,
                proposal=proposal,
                original_result=original_result,
            )

        logger.info("Accepted correction for %s", request.collection)
        result = self.executor.execute(corrected_request, new_outcome)
        return HealingResult(
            outcome=new_outcome,
            result=result,
            corrected=True,
            proposal=proposal,
            original_result=original_result,
        )

    @staticmethod
    def build_request(
        request: QueryRequest,
        outcome: Union[ValidOutcome, InvalidFieldsOutcome],
        type_map: Dict[str, FieldType],
        fields: List[FieldMeta],
    ) -> CorrectionRequest:
        """Assemble the structured input for the reasoning collaborator."""
        is_invalid = isinstance(outcome, InvalidFieldsOutcome)
        return CorrectionRequest(
            collection=request.collection,
            operation=request.operation,
            trigger="invalid_fields" if is_invalid else "empty_result",
            schema_fields=type_map,
            field_descriptions={f.name: f.description for f in fields if f.description},
            original_query=CorrectionProposal(
                predicate=request.predicate,
                pipeline=request.pipeline,
                key=request.key,
                projection=request.projection,
                sort=request.sort,
            ),
            invalid_fields=outcome.invalid_fields if is_invalid else [],
            suggestions=outcome.suggestions if is_invalid else {},
        )
