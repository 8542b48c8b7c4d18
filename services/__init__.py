"""
服務層

這個 package 包含純計算邏輯與外部協作者介面，不負責階段轉換：
- RatingService：Elo 積分計算與一次性套用
- CommitmentService：承諾雜湊計算與揭示驗證
- OutcomeService：依猜測與揭示決定勝負
- MatchViewService：依階段投影對局資訊（資訊隱藏）
- AgentRegistry：身分子系統的介面（存在檢查、讀取積分、寫入戰績）
"""
