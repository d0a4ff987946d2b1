"""Canonical approval checkpoints and sequence validation."""

from page_integrity.extraction.models import Checkbox

from .models import ApprovalCheckpoint, DetectedSignature, SignatureRole
from .patterns import CANONICAL_SEQUENCE, FINAL_APPROVAL_ROLES

MISSING_FINAL_TEXT = "Missing final approval (verifier/manager/released by)"

# Position of each role in the mandated order. The final approval slot
# comes after the canonical roles; qa_approver keeps its canonical place.
# All final roles share that slot, so any of them signed above a canonical
# role breaks the order, whichever one ends up filling the final slot.
SEQUENCE_INDEX: dict[SignatureRole, int] = {
    **{role: len(CANONICAL_SEQUENCE) for role in FINAL_APPROVAL_ROLES},
    **{role: index for index, role in enumerate(CANONICAL_SEQUENCE)},
}


def sort_top_to_bottom(signatures: list[DetectedSignature]) -> list[DetectedSignature]:
    return sorted(signatures, key=lambda s: s.bounding_box.y)


def _pair_checkbox(
    signature: DetectedSignature,
    checkboxes: list[Checkbox],
    used: set[int],
    radius: float,
) -> Checkbox | None:
    best_index = -1
    best_distance = radius
    for index, checkbox in enumerate(checkboxes):
        if index in used or checkbox.bounding_box is None:
            continue
        distance = signature.bounding_box.center_distance(checkbox.bounding_box)
        if distance < best_distance:
            best_index, best_distance = index, distance
    if best_index < 0:
        return None
    used.add(best_index)
    return checkboxes[best_index]


def _checkpoint(
    role: SignatureRole,
    signature: DetectedSignature,
    checkbox: Checkbox | None,
    final: bool,
) -> ApprovalCheckpoint:
    return ApprovalCheckpoint(
        role=role,
        signature=signature,
        checkbox=checkbox,
        is_complete=signature.has_date and (checkbox is None or checkbox.is_checked),
        is_missing=False,
        associated_text=signature.field_label,
        is_final_approval=final,
    )


def build_canonical_checkpoints(
    signatures: list[DetectedSignature],
    checkboxes: list[Checkbox],
    checkbox_radius: float = 100.0,
) -> tuple[list[ApprovalCheckpoint], SignatureRole | None]:
    """Match signatures to the canonical sequence plus a final approval slot.

    Each required role takes the topmost unused signature of that role and
    pairs it with the nearest unused checkbox within ``checkbox_radius``.
    The final slot then takes the topmost remaining signature of any final
    approval role. Signatures and checkboxes are consumed at most once.

    Args:
        signatures: Detected signatures sorted top to bottom.
        checkboxes: Page checkboxes.
        checkbox_radius: Maximum signature-to-checkbox center distance.

    Returns:
        The checkpoints and the role that satisfied the final slot, if any.
    """
    used_signatures: set[int] = set()
    used_checkboxes: set[int] = set()
    checkpoints: list[ApprovalCheckpoint] = []

    def take(roles: tuple[SignatureRole, ...]) -> DetectedSignature | None:
        for index, signature in enumerate(signatures):
            if index not in used_signatures and signature.role in roles:
                used_signatures.add(index)
                return signature
        return None

    for role in CANONICAL_SEQUENCE:
        signature = take((role,))
        if signature is None:
            checkpoints.append(
                ApprovalCheckpoint(
                    role=role,
                    is_complete=False,
                    is_missing=True,
                    associated_text=f"Missing {role.value.replace('_', ' ')}",
                )
            )
            continue
        checkbox = _pair_checkbox(
            signature, checkboxes, used_checkboxes, checkbox_radius
        )
        checkpoints.append(_checkpoint(role, signature, checkbox, final=False))

    final = take(FINAL_APPROVAL_ROLES)
    if final is None:
        checkpoints.append(
            ApprovalCheckpoint(
                role=SignatureRole.VERIFIER,
                is_complete=False,
                is_missing=True,
                associated_text=MISSING_FINAL_TEXT,
                is_final_approval=True,
            )
        )
        return checkpoints, None

    checkbox = _pair_checkbox(final, checkboxes, used_checkboxes, checkbox_radius)
    checkpoints.append(_checkpoint(final.role, final, checkbox, final=True))
    return checkpoints, final.role


def validate_sequence(signatures: list[DetectedSignature]) -> bool:
    """Check that sequenced roles never regress from top to bottom.

    Args:
        signatures: All detected signatures sorted top to bottom.

    Returns:
        False if any role appears below a role that comes later in the
        mandated order.
    """
    highest = -1
    for signature in signatures:
        index = SEQUENCE_INDEX.get(signature.role)
        if index is None:
            continue
        if index < highest:
            return False
        highest = index
    return True
