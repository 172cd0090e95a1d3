"""
Cross-record linkage.

References are denormalized on both records. A link rule names the parent-side
field holding the child's number and knows how the child points back. Link and
unlink always produce both new snapshots together; the service persists them in
one unit of work.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Tuple

from qms_workflow.core.errors import DanglingLinkError, RecordValidationError
from qms_workflow.schemas.enums import ItemType
from qms_workflow.schemas.registry import QualityRecord, item_type_of


@dataclass(frozen=True)
class LinkRule:
    parent_type: ItemType
    child_type: ItemType
    parent_field: str
    # Does the child point back at this parent?
    points_to: Callable[[QualityRecord, QualityRecord], bool]
    # Parent numbers the child currently points at.
    back_refs: Callable[[QualityRecord], List[str]]
    attach: Callable[[QualityRecord, QualityRecord], None]
    detach: Callable[[QualityRecord, QualityRecord], None]
    # Whether the child may point at more than one parent of this type.
    many_parents: bool = False


def _ncr_source_points_to(child, parent) -> bool:
    return child.source_ncr_number == parent.number


def _ncr_source_refs(child) -> List[str]:
    return [child.source_ncr_number] if child.source_ncr_number else []


def _ncr_source_attach(child, parent) -> None:
    child.source_ncr_id = parent.id
    child.source_ncr_number = parent.number


def _ncr_source_detach(child, parent) -> None:
    child.source_ncr_id = None
    child.source_ncr_number = None


def _mrb_ncr_points_to(mrb, ncr) -> bool:
    return ncr.number in mrb.linked_ncr_numbers


def _mrb_ncr_refs(mrb) -> List[str]:
    return list(mrb.linked_ncr_numbers)


def _mrb_ncr_attach(mrb, ncr) -> None:
    mrb.linked_ncr_numbers.append(ncr.number)
    if mrb.source_ncr_number is None:
        mrb.source_ncr_number = ncr.number


def _mrb_ncr_detach(mrb, ncr) -> None:
    mrb.linked_ncr_numbers = [n for n in mrb.linked_ncr_numbers if n != ncr.number]
    if mrb.source_ncr_number == ncr.number:
        mrb.source_ncr_number = mrb.linked_ncr_numbers[0] if mrb.linked_ncr_numbers else None


def _capa_mrb_points_to(capa, mrb) -> bool:
    return capa.mrb_number == mrb.number


def _capa_mrb_refs(capa) -> List[str]:
    return [capa.mrb_number] if capa.mrb_number else []


def _capa_mrb_attach(capa, mrb) -> None:
    capa.mrb_number = mrb.number


def _capa_mrb_detach(capa, mrb) -> None:
    capa.mrb_number = None


LINK_RULES: Dict[Tuple[ItemType, ItemType], LinkRule] = {
    (ItemType.NCR, ItemType.MRB): LinkRule(
        ItemType.NCR,
        ItemType.MRB,
        parent_field="mrb_number",
        points_to=_mrb_ncr_points_to,
        back_refs=_mrb_ncr_refs,
        attach=_mrb_ncr_attach,
        detach=_mrb_ncr_detach,
        many_parents=True,
    ),
    (ItemType.NCR, ItemType.CAPA): LinkRule(
        ItemType.NCR,
        ItemType.CAPA,
        parent_field="capa_number",
        points_to=_ncr_source_points_to,
        back_refs=_ncr_source_refs,
        attach=_ncr_source_attach,
        detach=_ncr_source_detach,
    ),
    (ItemType.NCR, ItemType.SCAR): LinkRule(
        ItemType.NCR,
        ItemType.SCAR,
        parent_field="scar_number",
        points_to=_ncr_source_points_to,
        back_refs=_ncr_source_refs,
        attach=_ncr_source_attach,
        detach=_ncr_source_detach,
    ),
    (ItemType.MRB, ItemType.CAPA): LinkRule(
        ItemType.MRB,
        ItemType.CAPA,
        parent_field="capa_number",
        points_to=_capa_mrb_points_to,
        back_refs=_capa_mrb_refs,
        attach=_capa_mrb_attach,
        detach=_capa_mrb_detach,
    ),
}


def rule_for(parent_type: ItemType, child_type: ItemType) -> LinkRule:
    rule = LINK_RULES.get((parent_type, child_type))
    if rule is None:
        raise RecordValidationError(
            f"{parent_type.value} -> {child_type.value} is not a supported link",
            {"supported": [f"{p.value}->{c.value}" for p, c in LINK_RULES]},
        )
    return rule


def _state(rule: LinkRule, parent: QualityRecord, child: QualityRecord) -> Tuple[bool, bool]:
    return getattr(parent, rule.parent_field) == child.number, rule.points_to(child, parent)


# PUBLIC_INTERFACE
def link_records(parent: QualityRecord, child: QualityRecord) -> Tuple[QualityRecord, QualityRecord]:
    """
    Link parent -> child, setting both references.

    Raises:
        RecordValidationError: unsupported pair, or the records are already linked
        DanglingLinkError: either side already references a different record, or
            only one side of this link exists
    """
    rule = rule_for(item_type_of(parent), item_type_of(child))
    parent_has, child_has = _state(rule, parent, child)
    if parent_has and child_has:
        raise RecordValidationError(f"{parent.number} and {child.number} are already linked")
    if parent_has != child_has:
        raise DanglingLinkError(
            f"Link between {parent.number} and {child.number} is one-sided",
            {"parentReferencesChild": parent_has, "childReferencesParent": child_has},
        )
    current = getattr(parent, rule.parent_field)
    if current is not None:
        raise DanglingLinkError(
            f"{parent.number} is already linked to {current}; unlink it first",
            {"field": rule.parent_field, "current": current},
        )
    refs = rule.back_refs(child)
    if refs and not rule.many_parents:
        raise DanglingLinkError(
            f"{child.number} is already linked to {refs[0]}; unlink it first",
            {"current": refs[0]},
        )

    new_parent = parent.model_copy(deep=True)
    new_child = child.model_copy(deep=True)
    setattr(new_parent, rule.parent_field, child.number)
    rule.attach(new_child, new_parent)
    return new_parent, new_child


# PUBLIC_INTERFACE
def unlink_records(parent: QualityRecord, child: QualityRecord) -> Tuple[QualityRecord, QualityRecord]:
    """Clear both sides of an existing link. Neither record is otherwise changed."""
    rule = rule_for(item_type_of(parent), item_type_of(child))
    parent_has, child_has = _state(rule, parent, child)
    if not parent_has and not child_has:
        raise RecordValidationError(f"{parent.number} and {child.number} are not linked")
    if parent_has != child_has:
        raise DanglingLinkError(
            f"Link between {parent.number} and {child.number} is one-sided",
            {"parentReferencesChild": parent_has, "childReferencesParent": child_has},
        )
    new_parent = parent.model_copy(deep=True)
    new_child = child.model_copy(deep=True)
    setattr(new_parent, rule.parent_field, None)
    rule.detach(new_child, new_parent)
    return new_parent, new_child


# PUBLIC_INTERFACE
def find_dangling_links(records: Iterable[QualityRecord]) -> List[dict]:
    """
    Report every reference whose counterpart is missing or does not point back.

    Used by consistency checks; an empty list means the graph is symmetric.
    """
    by_number: Dict[Tuple[ItemType, str], QualityRecord] = {}
    all_records = list(records)
    for r in all_records:
        by_number[(item_type_of(r), r.number)] = r

    problems: List[dict] = []
    for rule in LINK_RULES.values():
        for r in all_records:
            kind = item_type_of(r)
            if kind == rule.parent_type:
                target = getattr(r, rule.parent_field)
                if target is None:
                    continue
                child = by_number.get((rule.child_type, target))
                if child is None or not rule.points_to(child, r):
                    problems.append(
                        {"record": r.number, "field": rule.parent_field, "references": target}
                    )
            if kind == rule.child_type:
                for ref in rule.back_refs(r):
                    parent = by_number.get((rule.parent_type, ref))
                    if parent is None or getattr(parent, rule.parent_field) != r.number:
                        problems.append(
                            {"record": r.number, "field": f"{rule.parent_type.value}Ref", "references": ref}
                        )
    return problems
