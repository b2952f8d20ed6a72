from . import dashboard
from . import general
