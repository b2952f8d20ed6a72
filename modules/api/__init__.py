from .wrapper import *
