from crm.models.customer import Customer
from crm.models.invoice import Invoice
from crm.models.email_open import EmailOpen
from crm.models.email_log import EmailLog
from crm.models.message import Message
from crm.models.inventory import InventoryCategory, InventoryItem
from crm.models.profile import Profile
from crm.models.setting import Setting

__all__ = ["Customer", "Invoice", "EmailOpen", "EmailLog", "Message", "InventoryCategory", "InventoryItem", "Profile", "Setting"]
