from .model import *
from .exceptions import *
from .events import *
from .layout import *
from .renderer import *
from .session import *
from .validation import *
