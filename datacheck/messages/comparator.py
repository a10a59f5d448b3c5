"""
Structural Comparator

Compares tree-shaped messages: own fields first, then every repeating group
of the expected message. For each group type the actual sub-messages are
loaded into an arena once; every expected sub-message claims the first
unused arena entry whose key fields match, and the pair is compared
recursively. Arena entries are only marked used, never removed, so the
actual message is left untouched.

Result layout:

    Message check result
    ├── fields of the top message
    └── Repeating groups
        ├── <SubMsgSource of matched sub-message>  (recursive)
        ├── <not found sub-message>                 (failed)
        └── Extra repeating groups with type '<type>'
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from datacheck.comparison.diff_result import DiffResult, FieldDiff, Outcome
from datacheck.config.settings import ComparisonSettings, ExtraPolicy
from datacheck.exceptions import ParametersError
from datacheck.matching.value_matcher import InfoIndication, ValueMatcher
from datacheck.messages.message import MSG_TYPE, ROUTING_FIELDS, SUB_MSG_SOURCE, SUB_MSG_TYPE, Message
from datacheck.utils.logger import get_logger, log_operation

logger = get_logger(__name__)

MESSAGE_RESULT = "Message check result"
REPEATING_GROUPS = "Repeating groups"
TYPES_DONT_MATCH = "Message types don't match."
NOT_FOUND_TEMPLATE = "Repeating group with type '{}' from sub-action '{}' not found in received message"
EXTRA_TEMPLATE = "Extra repeating groups with type '{}'"


class _Arena:
    """Actual sub-messages of one group type with a used flag per entry."""

    def __init__(self, messages: Sequence[Message]):
        self.messages = list(messages)
        self.used = [False] * len(self.messages)

    def unused(self) -> List[Message]:
        return [message for message, used in zip(self.messages, self.used) if not used]


class StructuralComparator:
    """
    Recursive comparator of messages with repeating groups.

    Args:
        service_fields: Fields carrying routing or metadata, never compared
        extra_policy: How unclaimed actual sub-messages are reported
        matcher: Value matcher for leaf fields (a new one when omitted)
        save_fields: Expose non-empty actual fields of the top message in result.outputs
        save_sub_fields: Expose non-empty fields of matched actual sub-messages,
            keyed by the expected sub-message source
        group_key_fields: Default group type -> key fields mapping used when
            compare() is called without one
    """

    def __init__(
        self,
        service_fields: Iterable[str] = (),
        extra_policy: ExtraPolicy = ExtraPolicy.IGNORE,
        matcher: Optional[ValueMatcher] = None,
        save_fields: bool = False,
        save_sub_fields: bool = False,
        group_key_fields: Optional[Mapping[str, Iterable[str]]] = None,
    ):
        self.service_fields = frozenset(service_fields) | ROUTING_FIELDS
        self.extra_policy = extra_policy
        self.matcher = matcher or ValueMatcher()
        self.save_fields = save_fields
        self.save_sub_fields = save_sub_fields
        self.group_key_fields = {group: tuple(fields) for group, fields in (group_key_fields or {}).items()}

    @classmethod
    def from_settings(
        cls,
        settings: ComparisonSettings,
        matcher: Optional[ValueMatcher] = None,
        save_fields: bool = False,
        save_sub_fields: bool = False,
    ) -> "StructuralComparator":
        """Build a comparator from loaded settings (service fields, extra policy, group keys)."""
        return cls(
            service_fields=settings.service_fields,
            extra_policy=settings.message_extra_policy(),
            matcher=matcher,
            save_fields=save_fields,
            save_sub_fields=save_sub_fields,
            group_key_fields=settings.group_key_fields,
        )

    @log_operation("compare_messages")
    def compare(
        self,
        expected: Message,
        actual: Message,
        group_key_fields: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> DiffResult:
        """
        Compare expected message with actual one.

        Args:
            expected: Expected message, may contain matcher expressions
            actual: Received message
            group_key_fields: Group type -> fields identifying a sub-message,
                defaults to the mapping given at construction. Groups without
                key fields are matched on all non-service fields.

        Returns:
            DiffResult tree, outputs filled when saving fields is enabled
        """
        if group_key_fields is None:
            keys = self.group_key_fields
        else:
            keys = {group: tuple(fields) for group, fields in group_key_fields.items()}
        outputs: Dict[str, Dict] = {}
        result = self._compare_message(expected, actual, keys, None, outputs)
        if outputs:
            result.outputs = outputs

        logger.info(
            "Message comparison finished",
            operation="compare_messages",
            context={"success": result.success, "groups": list(expected.sub_message_types())},
        )
        return result

    def _compare_message(
        self,
        expected: Message,
        actual: Message,
        keys: Mapping[str, Tuple[str, ...]],
        group_type: Optional[str],
        outputs: Dict[str, Dict],
    ) -> DiffResult:
        if group_type is None:
            name = MESSAGE_RESULT
        else:
            name = expected.field(SUB_MSG_SOURCE) or group_type

        type_check = self._check_type(name, expected, actual)
        if type_check is not None:
            return type_check

        result = DiffResult(name=name)
        if group_type is None:
            if self.save_fields:
                outputs["fields"] = _non_empty_fields(actual)
        else:
            result.add_field(FieldDiff(SUB_MSG_TYPE, group_type, group_type, Outcome.MATCH))
            if self.save_sub_fields:
                outputs.setdefault("sub_fields", {})[name] = _non_empty_fields(actual)

        for field_name in expected.field_names():
            if field_name in self.service_fields:
                continue
            result.add_field(
                self.matcher.check(
                    field_name,
                    expected.field(field_name),
                    actual.field(field_name),
                    info=InfoIndication.NULL_OR_EMPTY,
                )
            )

        if expected.has_sub_messages:
            result.add_child(self._compare_groups(expected, actual, keys, outputs))
        return result

    def _check_type(self, name: str, expected: Message, actual: Message) -> Optional[DiffResult]:
        expected_type = expected.field(MSG_TYPE)
        if not expected_type:
            return None

        actual_type = actual.field(MSG_TYPE)
        try:
            if self.matcher.match(expected_type, actual_type):
                return None
        except ParametersError as e:
            failure = DiffResult.failure(TYPES_DONT_MATCH, name=name)
            failure.add_field(FieldDiff(MSG_TYPE, expected_type, actual_type, Outcome.ERROR, error=str(e)))
            return failure

        failure = DiffResult.failure(TYPES_DONT_MATCH, name=name)
        failure.add_field(FieldDiff(MSG_TYPE, expected_type, actual_type, Outcome.MISMATCH))
        return failure

    def _compare_groups(
        self,
        expected: Message,
        actual: Message,
        keys: Mapping[str, Tuple[str, ...]],
        outputs: Dict[str, Dict],
    ) -> DiffResult:
        container = DiffResult(name=REPEATING_GROUPS)

        for group_type in expected.sub_message_types():
            arena = _Arena(actual.sub_messages(group_type))
            key_fields = keys.get(group_type)

            for expected_sub in expected.sub_messages(group_type):
                position, error = self._claim(arena, expected_sub, key_fields)
                if position is None:
                    container.add_child(self._not_found(group_type, expected_sub, error))
                    continue
                arena.used[position] = True
                container.add_child(
                    self._compare_message(expected_sub, arena.messages[position], keys, group_type, outputs)
                )

            extras = arena.unused()
            if extras and self.extra_policy is not ExtraPolicy.IGNORE:
                container.add_child(self._extras(group_type, extras))

        return container

    def _claim(
        self, arena: _Arena, expected: Message, key_fields: Optional[Tuple[str, ...]]
    ) -> Tuple[Optional[int], Optional[str]]:
        """Return position of the first unused matching candidate, or an error text."""
        if key_fields:
            fields = key_fields
        else:
            fields = tuple(name for name in expected.field_names() if name not in self.service_fields)

        for position, candidate in enumerate(arena.messages):
            if arena.used[position]:
                continue
            for field_name in fields:
                try:
                    equal = self._fields_equal(field_name, expected, candidate)
                except ParametersError as e:
                    return None, f"Error while checking key field '{field_name}': {e}"
                if not equal:
                    break
            else:
                return position, None
        return None, None

    def _fields_equal(self, field_name: str, expected: Message, actual: Message) -> bool:
        expected_value = expected.field(field_name)
        if not expected_value:
            return True
        actual_value = actual.field(field_name)
        if self.matcher.is_expression(expected_value):
            return self.matcher.match(expected_value, actual_value)
        return expected_value == actual_value

    @staticmethod
    def _not_found(group_type: str, expected: Message, error: Optional[str]) -> DiffResult:
        source = expected.field(SUB_MSG_SOURCE)
        result = DiffResult.failure(NOT_FOUND_TEMPLATE.format(group_type, source), name=source or group_type)
        if error is not None:
            result.add_field(FieldDiff(SUB_MSG_SOURCE, source, None, Outcome.ERROR, error=error))
        return result

    def _extras(self, group_type: str, extras: Sequence[Message]) -> DiffResult:
        failing = self.extra_policy is ExtraPolicy.FAIL
        outcome = Outcome.MISMATCH if failing else Outcome.INFO
        container = DiffResult(name=EXTRA_TEMPLATE.format(group_type), failed=failing)
        for number, extra in enumerate(extras, start=1):
            block = DiffResult(name=f"{group_type} #{number}")
            for field_name in extra.field_names():
                block.add_field(FieldDiff(field_name, None, extra.field(field_name), outcome))
            container.add_child(block)
        return container


def _non_empty_fields(message: Message) -> Dict[str, str]:
    return {name: value for name, value in message.fields.items() if value}
