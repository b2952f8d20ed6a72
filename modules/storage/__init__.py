from .cache import *
