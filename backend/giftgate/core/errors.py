"""
🎁 GiftGate - 錯誤分類 (Error Taxonomy)

每一種錯誤都只影響觸發它的那一個事件，不會讓程式終止：
    ValidationError        參數格式錯誤 → 提案不會建立
    AuthorizationError     頻道/角色不符 → 拒絕訊息，無狀態轉換
    StaleProposalError     提案不存在或已處理 → 僅回覆決策者
    ProposalExpiredError   決策時才發現提案過期 → 回覆決策者並發佈過期事件
    DuplicateProposalError 同一 ID 已有待審提案
    ExecutionError         核准後執行失敗 → 取代原提案訊息，不重試
"""


class GiftGateError(Exception):
    """所有 GiftGate 錯誤的基類"""


class ValidationError(GiftGateError):
    """指令參數缺漏、型別錯誤或數值超出範圍"""


class AuthorizationError(GiftGateError):
    """操作者不在指定頻道或缺少必要角色"""


class StaleProposalError(GiftGateError):
    """決策指向的提案已過期、已處理或從未存在"""

    def __init__(self, proposal_id: str):
        super().__init__(f"Proposal {proposal_id} has expired or was already processed")
        self.proposal_id = proposal_id


class ProposalExpiredError(StaleProposalError):
    """決策送達時提案已超過存活時間；附帶已轉為 EXPIRED 的提案"""

    def __init__(self, proposal):
        super().__init__(proposal.id)
        self.proposal = proposal


class DuplicateProposalError(GiftGateError):
    """同一請求 ID 已有待審提案"""

    def __init__(self, proposal_id: str):
        super().__init__(f"Proposal {proposal_id} is already pending")
        self.proposal_id = proposal_id


class ExecutionError(GiftGateError):
    """核准後執行失敗（身分解析或帳本寫入）"""


class UserResolutionError(GiftGateError):
    """使用者代號無法解析為顯示名稱"""


class StoreError(GiftGateError):
    """外部帳本讀寫失敗"""
