from .user import User
from .customer import Customer
from .image import Image
from .subscription import Subscription
from .purchase import Purchase
from .image_download import ImageDownload
