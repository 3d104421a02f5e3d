"""
Namaste 会员积分后端
"""
__version__ = "1.0.0"
