from .access import *
from .backend import *
from .exceptions import *
from .keys import *
from .monitor import *
from .schemas import *
