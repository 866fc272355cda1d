"""
🎁 GiftGate - Catalog Module
指令目錄：指令種類、參數驗證與標準文字渲染。
"""

__module_name__ = "catalog"
__version__ = "1.0.0"
