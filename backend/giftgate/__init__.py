"""
🎁 GiftGate - 兩人審核贈送系統
特權贈送指令（卡包 / 點數）必須由第二位核准者批准後才會寫入帳本。
"""

__version__ = "1.0.0"
