"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- 狀態機：集中管理對局階段轉換
- Manager：管理 Match 與配對佇列的生命週期
- Resolution：終局結算（勝負 + 積分，一次寫入）
- Timeout Sweeper：逾時判負
- Locks：並發控制工具
"""
