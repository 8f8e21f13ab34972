"""
Submission Assembler - Packs a wizard session into one multipart payload.

Wire shape (POST .../{token}/submit):
- token:           the access token of the link
- fieldValues:     JSON text of the flat answer map
- document_<id>:   one file part per attached required document

The payload is rebuilt from the current AnswerState on every submit so a
retry after a failure always sends the latest answers.
"""
import json
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field

from models.intake_forms import AnswerState, AttachedFile

FIELD_VALUES_KEY = "fieldValues"
TOKEN_KEY = "token"
DOCUMENT_PART_PREFIX = "document_"

FilePart = Tuple[str, Tuple[str, bytes, str]]


def document_part_name(document_id: str) -> str:
    return f"{DOCUMENT_PART_PREFIX}{document_id}"


def document_id_from_part(part_name: str) -> str:
    """Inverse of document_part_name(); used by the receiving endpoint."""
    return part_name[len(DOCUMENT_PART_PREFIX):]


class MultipartPayload(BaseModel):
    token: str
    field_values: str
    files: List[AttachedFile] = Field(default_factory=list)

    def form_data(self) -> Dict[str, str]:
        """Plain form fields, ready for httpx ``data=``."""
        return {
            TOKEN_KEY: self.token,
            FIELD_VALUES_KEY: self.field_values,
        }

    def file_parts(self) -> List[FilePart]:
        """File parts, ready for httpx ``files=``."""
        return [
            (document_part_name(f.document_id), (f.name, f.content, f.content_type))
            for f in self.files
        ]

    def multipart_parts(self) -> List[Tuple[str, Tuple[Optional[str], Any]]]:
        """
        Every part for httpx ``files=``: plain fields first, then documents.

        Plain fields carry no filename, so the body stays multipart/form-data
        even when no document is attached.
        """
        fields = [(key, (None, value)) for key, value in self.form_data().items()]
        return fields + self.file_parts()


def assemble(answer_state: AnswerState, token: str) -> MultipartPayload:
    """Serialize answers and attach one file part per document id."""
    return MultipartPayload(
        token=token,
        field_values=json.dumps(answer_state.values),
        files=list(answer_state.files.values()),
    )
