from app.models.order import Order
from app.models.order_item import OrderItem
from app.models.customer import Customer
from app.models.product import Product
from app.models.classification_group import ClassificationGroup
from app.models.classification_option import ClassificationOption
from app.models.user_role import UserRole
from app.models.receipt_sequence import ReceiptSequence
