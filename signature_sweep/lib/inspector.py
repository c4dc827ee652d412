"""Document inspection: does a PDF carry a signature form field?"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Optional, Protocol, Set

from pypdf import PdfReader

from signature_sweep.lib.errors import InspectionError

logger = logging.getLogger(__name__)

__all__ = ["InspectionResult", "DocumentInspector", "PdfSignatureInspector"]

SIGNATURE_FIELD_TYPE = "/Sig"


@dataclass(frozen=True)
class InspectionResult:
    """What the inspector learned about one document."""

    has_signature_field: bool
    field_count: int = 0
    signature_field_count: int = 0


class DocumentInspector(Protocol):
    def inspect(self, data: bytes) -> InspectionResult:
        """Inspect raw document bytes; raise InspectionError on malformed input."""
        ...


class PdfSignatureInspector:
    """Reports the interactive form fields of a PDF that are of signature kind.

    Walks the AcroForm field tree, honouring field types inherited from
    parent nodes, and counts terminal fields.
    """

    def __init__(self, password: str = ""):
        self.password = password

    def inspect(self, data: bytes) -> InspectionResult:
        try:
            reader = PdfReader(BytesIO(data))
            if reader.is_encrypted:
                reader.decrypt(self.password)
            acroform = reader.trailer["/Root"].get("/AcroForm")
            if acroform is None:
                return InspectionResult(has_signature_field=False)

            counts = [0, 0]
            visited: Set[int] = set()
            for ref in acroform.get_object().get("/Fields", []) or []:
                self._walk(ref, None, counts, visited)
        except InspectionError:
            raise
        except Exception as exc:
            # pypdf surfaces damaged files through many exception types
            raise InspectionError("Could not read PDF form fields", cause=exc) from exc

        fields, signatures = counts
        return InspectionResult(
            has_signature_field=signatures > 0,
            field_count=fields,
            signature_field_count=signatures,
        )

    def _walk(
        self,
        ref: Any,
        inherited_type: Optional[str],
        counts: list,
        visited: Set[int],
    ) -> None:
        idnum = getattr(ref, "idnum", None)
        if idnum is not None:
            if idnum in visited:
                return
            visited.add(idnum)

        node = ref.get_object()
        field_type = node.get("/FT", inherited_type)
        kids = node.get("/Kids")

        # widget-only kids carry no /T and belong to their parent field
        named_kids = [k for k in (kids or []) if "/T" in k.get_object()]
        if named_kids:
            for kid in named_kids:
                self._walk(kid, field_type, counts, visited)
            return

        counts[0] += 1
        if field_type == SIGNATURE_FIELD_TYPE:
            counts[1] += 1
