# coding: utf-8
from .config import CONFIG


__version__ = "0.1.0"
