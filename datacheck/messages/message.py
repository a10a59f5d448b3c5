"""Tree-shaped message with named repeating groups."""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

MSG_TYPE = "MsgType"
SUB_MSG_TYPE = "SubMsgType"
SUB_MSG_SOURCE = "SubMsgSource"

# Routing fields present on expected messages built from test steps
ROUTING_FIELDS = frozenset({MSG_TYPE, SUB_MSG_TYPE, SUB_MSG_SOURCE})


class Message:
    """
    Field map plus ordered sub-messages per repeating-group type.

    Example:
        >>> order = Message({"MsgType": "NewOrder", "Account": "ACC1"})
        >>> order.add_sub_message("Leg", Message({"LegId": "1", "Qty": "10"}))
        >>> [leg.field("Qty") for leg in order.sub_messages("Leg")]
        ['10']
    """

    def __init__(
        self,
        fields: Optional[Mapping[str, Optional[str]]] = None,
        sub_messages: Optional[Mapping[str, Iterable["Message"]]] = None,
    ):
        self._fields: Dict[str, Optional[str]] = dict(fields or {})
        self._sub_messages: Dict[str, List[Message]] = {}
        for group_type, children in (sub_messages or {}).items():
            for child in children:
                self.add_sub_message(group_type, child)

    def field(self, name: str) -> Optional[str]:
        return self._fields.get(name)

    def field_names(self) -> Tuple[str, ...]:
        return tuple(self._fields)

    @property
    def fields(self) -> Dict[str, Optional[str]]:
        return dict(self._fields)

    def sub_messages(self, group_type: str) -> List["Message"]:
        return list(self._sub_messages.get(group_type, ()))

    def sub_message_types(self) -> Tuple[str, ...]:
        return tuple(self._sub_messages)

    @property
    def has_sub_messages(self) -> bool:
        return any(self._sub_messages.values())

    def add_sub_message(self, group_type: str, message: "Message") -> None:
        self._sub_messages.setdefault(group_type, []).append(message)

    def __repr__(self) -> str:
        groups = {group_type: len(children) for group_type, children in self._sub_messages.items()}
        return f"Message(fields={self._fields!r}, groups={groups!r})"
