"""
勝負判定服務：Liar's Lock 的終局規則

純計算邏輯，只依雙方的猜測與真實選擇決定勝負

規則：
┌──────────────────┬──────────────────┬──────────┐
│ P1 猜中 P2 的選擇 │ P2 猜中 P1 的選擇 │ 結果      │
├──────────────────┼──────────────────┼──────────┤
│ 是               │ 否               │ P1 勝     │
│ 否               │ 是               │ P2 勝     │
│ 是               │ 是               │ 平手      │
│ 否               │ 否               │ 平手      │
└──────────────────┴──────────────────┴──────────┘
"""
from models import Winner


def decide_winner(player1_guess: int, player2_guess: int,
                  player1_choice: int, player2_choice: int) -> Winner:
    """
    計算勝負

    參數：
        player1_guess: 玩家 1 對玩家 2 選擇的猜測
        player2_guess: 玩家 2 對玩家 1 選擇的猜測
        player1_choice: 玩家 1 揭示的真實選擇
        player2_choice: 玩家 2 揭示的真實選擇

    返回：
        Winner enum
    """
    player1_correct = player1_guess == player2_choice
    player2_correct = player2_guess == player1_choice

    if player1_correct and not player2_correct:
        return Winner.PLAYER1
    elif player2_correct and not player1_correct:
        return Winner.PLAYER2
    else:  # both correct or both wrong
        return Winner.DRAW


def score_for(winner: Winner, role: str) -> float:
    """
    將勝負轉為 Elo 的實際得分（1 / 0.5 / 0）

    範例：
        score_for(Winner.PLAYER1, "player1") -> 1
        score_for(Winner.PLAYER1, "player2") -> 0
        score_for(Winner.DRAW, "player2") -> 0.5
    """
    if winner == Winner.DRAW:
        return 0.5
    return 1 if winner.value == role else 0
