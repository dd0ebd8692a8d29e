from poultry.models.customer import Customer
from poultry.models.truck import Truck
from poultry.models.truck_load import TruckLoad
from poultry.models.invoice import Invoice
from poultry.models.payment import Payment
from poultry.models.reconciliation import DailyReconciliation
from poultry.models.invoice_sequence import InvoiceSequence

__all__ = ["Customer", "Truck", "TruckLoad", "Invoice", "Payment", "DailyReconciliation", "InvoiceSequence"]
