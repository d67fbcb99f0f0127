# gst_compliance/domain/models/gstr1.py

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Any

from pydantic import BaseModel, Field, PlainSerializer


def _money_json(value: Decimal) -> float:
    # Rounded in Decimal first; float() of a 2-dp Decimal prints cleanly.
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


Money = Annotated[Decimal, PlainSerializer(_money_json, return_type=float, when_used="json")]
Rate = Annotated[Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")]
Quantity = Annotated[Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")]

ZERO = Decimal("0.00")


class Gstr1ItemDetail(BaseModel):
    txval: Money = Field(..., description="Taxable value")
    rt: Rate = Field(..., description="Tax rate (e.g. 3.0)")
    iamt: Money = Field(ZERO, description="IGST amount")
    camt: Money = Field(ZERO, description="CGST amount")
    samt: Money = Field(ZERO, description="SGST amount")
    csamt: Money = Field(ZERO, description="Cess amount")


class Gstr1Item(BaseModel):
    num: int = Field(..., description="Line number within the invoice")
    itm_det: Gstr1ItemDetail


class Gstr1B2BInvoice(BaseModel):
    inum: str  # invoice number
    idt: str  # DD-MM-YYYY
    val: Money  # total invoice value
    pos: str  # place of supply (2-digit state code)
    rchrg: str = "N"  # reverse charge Y/N
    inv_typ: str = "R"  # regular
    itms: list[Gstr1Item] = Field(default_factory=list)


class Gstr1B2BEntry(BaseModel):
    ctin: str  # recipient GSTIN
    inv: list[Gstr1B2BInvoice] = Field(default_factory=list)


class Gstr1B2CLInvoice(BaseModel):
    inum: str
    idt: str
    val: Money
    itms: list[Gstr1Item] = Field(default_factory=list)


class Gstr1B2CLEntry(BaseModel):
    pos: str
    inv: list[Gstr1B2CLInvoice] = Field(default_factory=list)


class Gstr1B2CSEntry(BaseModel):
    sply_ty: str  # INTER / INTRA
    rt: Rate
    typ: str = "OE"  # other than e-commerce
    pos: str
    txval: Money = ZERO
    iamt: Money = ZERO
    camt: Money = ZERO
    samt: Money = ZERO
    csamt: Money = ZERO


class Gstr1HsnEntry(BaseModel):
    num: int
    hsn_sc: str
    desc: str = ""
    uqc: str = "OTH"
    qty: Quantity = ZERO
    val: Money = ZERO
    txval: Money = ZERO
    iamt: Money = ZERO
    camt: Money = ZERO
    samt: Money = ZERO
    csamt: Money = ZERO


class Gstr1HsnSection(BaseModel):
    data: list[Gstr1HsnEntry] = Field(default_factory=list)


class Gstr1Payload(BaseModel):
    gstin: str
    fp: str  # filing period e.g. "112025" for Nov 2025
    b2b: list[Gstr1B2BEntry] = Field(default_factory=list)
    b2cl: list[Gstr1B2CLEntry] = Field(default_factory=list)
    b2cs: list[Gstr1B2CSEntry] = Field(default_factory=list)
    hsn: Gstr1HsnSection = Field(default_factory=Gstr1HsnSection)

    def to_filing_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ReportOmission(BaseModel):
    id: str
    reason: str


class Gstr1Report(BaseModel):
    payload: Gstr1Payload
    omissions: list[ReportOmission] = Field(default_factory=list)
    summary: dict[str, Any] = Field(default_factory=dict)
