from marketplace.models.user import Role, User
from marketplace.models.category import Category
from marketplace.models.product import Product
from marketplace.models.cart import CartItem, SavedItem
from marketplace.models.campaign import Campaign
from marketplace.models.discount import DiscountCode, DiscountRedemption
from marketplace.models.order import Order
from marketplace.models.order_item import OrderItem
from marketplace.models.payment import OrderPayment
from marketplace.models.message import Message
