"""
🎁 GiftGate - Supervisor Module
監督者模組：提案登錄表 (Proposal Store) + 授權守門員 (Authorization Gate)
+ 審核流程引擎 (Approval Workflow)

本模組實現兩人審核：發起者提出特權指令，必須由另一位核准者批准後才會寫入帳本。
"""

__module_name__ = "supervisor"
__version__ = "1.0.0"
