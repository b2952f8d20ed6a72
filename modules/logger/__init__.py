from .handlers import *
from .provisioner import *
from .time import *
