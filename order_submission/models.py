"""
models.py — Data Models for Order Submission

This module defines the data structures exchanged with the browser and with QuickBase.
It uses Pydantic models to ensure type safety and validation of incoming data.

Models:
    - FieldMeta: Field metadata of a QuickBase table (id, label, type).
    - LineItem: A single ordered item of a submission.
    - OrderSubmissionRequest: The complete order payload sent by the order form.
    - AccessCheckRequest: Payload of the access check.
    - SignInRequest / SignUpRequest / FederatedSignInRequest: Identity provider payloads.

Request fields are deliberately optional: missing values are reported by the
workflow as a 400 that names the fields, instead of a generic schema error.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class FieldMeta(BaseModel):
    """
    Field metadata as returned by ``GET /v1/fields``.

    Attributes:
        id (int): Numeric field id, unique within the table.
        label (str): Display label. QuickBase may return null.
        fieldType (str): QuickBase field type (e.g. 'text', 'recordid', 'checkbox').
        baseType (str): Storage type (e.g. 'text', 'int', 'bool').
        properties (dict): Raw property block (readOnly, lookup targets, ...).
    """
    model_config = ConfigDict(extra="allow")

    id: int
    label: Optional[str] = None
    fieldType: Optional[str] = None
    baseType: Optional[str] = None
    properties: Optional[Dict[str, Any]] = None

    def summary(self) -> dict:
        return {"id": self.id, "label": self.label, "type": self.fieldType, "baseType": self.baseType}


class LineItem(BaseModel):
    """
    Represents a single line of an order.

    Attributes:
        itemName (str): Name of the ordered item.
        description (str): Free-text description.
        qty (str | float): Quantity as typed in the form.
        uom (str): Record id of the unit of measure.
    """
    model_config = ConfigDict(coerce_numbers_to_str=True)

    itemName: Optional[str] = None
    description: Optional[str] = None
    qty: Optional[Union[float, str]] = None
    uom: Optional[str] = None


class OrderSubmissionRequest(BaseModel):
    """
    Represents an order submitted by the order form.

    Attributes:
        jobNumber (str): Record id of the selected job/school.
        reqDate (str): Request date, ``YYYY-MM-DD``.
        dateRequiredForDelivery (str): Required delivery date, ``YYYY-MM-DD``.
        orderedBy (str): Email address of the requester.
        lineItems (List[LineItem]): Ordered items, at least one.
    """
    model_config = ConfigDict(coerce_numbers_to_str=True)

    jobNumber: Optional[str] = None
    reqDate: Optional[str] = None
    dateRequiredForDelivery: Optional[str] = None
    orderedBy: Optional[str] = None
    lineItems: List[LineItem] = Field(default_factory=list)


class AccessCheckRequest(BaseModel):
    email: Optional[str] = None


class SignInRequest(BaseModel):
    email: str
    password: str


class SignUpRequest(BaseModel):
    email: str
    password: str
    confirmPassword: str


class FederatedSignInRequest(BaseModel):
    """
    Credential returned by the provider popup (e.g. Google Sign-In).

    Attributes:
        idToken (str): OAuth ID token issued by the federated provider.
        providerId (str): Provider id, ``google.com`` by default.
        requestUri (str): URI the popup was opened from.
    """
    idToken: str
    providerId: str = "google.com"
    requestUri: str = "http://localhost"
