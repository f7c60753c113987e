"""
Pydantic schemas for API requests
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# Amounts are parsed straight into Decimal
Amount = Decimal


# Customer schemas
class CreateCustomerRequest(BaseModel):
    full_name: str
    phone_number: str
    alt_phone_number: str = ""
    email: Optional[str] = None
    father_spouse: str = ""
    address: str = ""
    gov_id_type: str = ""
    gov_id_number: str = ""


class UpdateCustomerRequest(BaseModel):
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    alt_phone_number: Optional[str] = None
    email: Optional[str] = None
    father_spouse: Optional[str] = None
    address: Optional[str] = None
    gov_id_type: Optional[str] = None
    gov_id_number: Optional[str] = None
    status: Optional[str] = Field(None, description="active or inactive")


# Loan schemas
class ScheduleRequest(BaseModel):
    loan_amount: Amount
    interest_rate: Amount = Field(..., description="Flat percentage over the whole term")
    number_of_installments: int
    installment_frequency: str = Field(..., description="Daily, Weekly or Monthly")
    start_date: str = Field(..., description="YYYY-MM-DD or DD/MM/YYYY")


class CreateLoanRequest(ScheduleRequest):
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_father_spouse: Optional[str] = None
    customer_alt_phone: Optional[str] = None
    customer_address: Optional[str] = None
    customer_gov_id_type: Optional[str] = None
    customer_gov_id_number: Optional[str] = None
    notes: str = ""

    def customer_fields(self) -> Dict[str, str]:
        fields = self.dict(include={
            'customer_name', 'customer_phone', 'customer_father_spouse', 'customer_alt_phone',
            'customer_address', 'customer_gov_id_type', 'customer_gov_id_number',
        })
        return {k: v for k, v in fields.items() if v is not None}


class UpdateLoanRequest(BaseModel):
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_father_spouse: Optional[str] = None
    customer_alt_phone: Optional[str] = None
    customer_address: Optional[str] = None
    customer_gov_id_type: Optional[str] = None
    customer_gov_id_number: Optional[str] = None
    loan_amount: Optional[Amount] = None
    interest_rate: Optional[Amount] = None
    number_of_installments: Optional[int] = None
    installment_frequency: Optional[str] = None
    start_date: Optional[str] = None
    notes: Optional[str] = None


class BulkUpdateLoansRequest(BaseModel):
    loan_ids: List[str]
    changes: Dict[str, Any]


class PaymentRequest(BaseModel):
    installment_no: int
    paid_amount: Amount
    fine_amount: Amount = Decimal("0")
    payment_method: Optional[str] = Field(None, description="Cash, UPI, Bank Transfer, Cheque, NEFT or RTGS")
    notes: str = ""
    payment_date: Optional[str] = None


class PartialPaymentRequest(BaseModel):
    amount: Amount
    fine_amount: Amount = Decimal("0")
    payment_method: Optional[str] = None
    notes: str = ""
    payment_date: Optional[str] = None


class StatusRequest(BaseModel):
    status: str


class CloseRequest(BaseModel):
    payment_method: Optional[str] = None


# Collection schemas
class AssignCollectionRequest(BaseModel):
    assigned_to: Optional[str] = None
    collection_route: Optional[str] = None
    notes: Optional[str] = None


# Voucher schemas
class JewelryItemModel(BaseModel):
    category: str
    name: str
    sno: Optional[int] = None
    remarks: str = ""
    stone: str = ""
    count: int = 1
    purity: str = ""


class CreateVoucherRequest(BaseModel):
    bill_no: str
    customer_id: str
    jewel_type: str = Field(..., description="gold or silver")
    gross_weight: Amount
    loan_amount: Amount
    interest_rate: Optional[Amount] = Field(None, description="Monthly %, from the rate card when omitted")
    deduction_weight: Amount = Decimal("0")
    net_weight: Optional[Amount] = None
    final_loan_amount: Optional[Amount] = None
    interest_amount: Optional[Amount] = None
    overall_loan_amount: Optional[Amount] = None
    loan_type: str = "Personal Loan"
    processing_fees: Amount = Decimal("0")
    disbursement_date: Optional[str] = None
    due_date: Optional[str] = None
    jewelry_items: List[JewelryItemModel] = []
    notes: str = ""


class UpdateVoucherRequest(BaseModel):
    customer_id: Optional[str] = None
    jewel_type: Optional[str] = None
    gross_weight: Optional[Amount] = None
    deduction_weight: Optional[Amount] = None
    net_weight: Optional[Amount] = None
    loan_amount: Optional[Amount] = None
    final_loan_amount: Optional[Amount] = None
    interest_rate: Optional[Amount] = None
    interest_amount: Optional[Amount] = None
    overall_loan_amount: Optional[Amount] = None
    loan_type: Optional[str] = None
    processing_fees: Optional[Amount] = None
    disbursement_date: Optional[str] = None
    due_date: Optional[str] = None
    jewelry_items: Optional[List[JewelryItemModel]] = None
    notes: Optional[str] = None
    status: Optional[str] = None


class RevertAndDeleteRequest(BaseModel):
    original_status: str = Field(..., description="Active or Overdue")


class AuctionRequest(BaseModel):
    notes: Optional[str] = None
    transfer_date: Optional[str] = None


class InterestPaymentRequest(BaseModel):
    amount: Amount
    months: int
    date: Optional[str] = None


# Interest rate schemas
class CreateInterestRateRequest(BaseModel):
    metal_type: str = Field(..., description="gold or silver")
    min_amount: Amount
    max_amount: Amount
    interest: Amount = Field(..., description="Monthly %")


class UpdateInterestRateRequest(BaseModel):
    metal_type: Optional[str] = None
    min_amount: Optional[Amount] = None
    max_amount: Optional[Amount] = None
    interest: Optional[Amount] = None


# Jewel catalogue and metal rate schemas
class CreateJewelRequest(BaseModel):
    name: str
    category: str = Field(..., description="RING, EARRINGS, NECKLACE, CHAIN, BRACELET or ANKLET")
    material: str = Field(..., description="gold or silver")
    weight: Optional[Amount] = None


class UpdateJewelRequest(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    material: Optional[str] = None
    weight: Optional[Amount] = None


class JewelRateRequest(BaseModel):
    metal_type: str = Field(..., description="gold or silver")
    rate: Amount = Field(..., description="Rate per gram")
    date: Optional[str] = None


# Financial year schemas
class CreateFinancialYearRequest(BaseModel):
    year: int = Field(..., description="Calendar year the financial year starts in")
    initial_stock_value: Amount = Decimal("0")
    final_stock_value: Amount = Decimal("0")


class UpdateFinancialYearRequest(BaseModel):
    initial_stock_value: Optional[Amount] = None
    final_stock_value: Optional[Amount] = None
    is_active: Optional[bool] = None
