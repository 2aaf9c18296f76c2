"""
백테스트 성과 지표 계산 모듈.

[ 역할 ]
    백테스트 결과(거래기록 + 캔들별 자산가치)를 받아 성과 지표를 계산.
    calculate_metrics() 함수가 핵심.

[ 계산하는 지표 ]
    - 총 수익률
    - 샤프 비율 (위험 대비 수익)
    - MDD (최대 낙폭)
    - 승률, 평균 수익/손실, 수익 팩터
    - 연속 승/패, 총 수수료

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run() 종료 시 호출

[ 입력 데이터 ]
    - trades: Account.trade_history (청산 거래만 기록되어 있음)
    - equity_curve: engine.py에서 캔들마다 기록한 equity 리스트
"""

from dataclasses import dataclass

import numpy as np

from candlecore.core.broker_api import Trade


@dataclass
class BacktestMetrics:
    """백테스트 성과 지표. summary()로 포맷된 리포트 출력 가능."""
    total_return: float = 0.0         # 총 수익률 (%)
    sharpe_ratio: float = 0.0         # 샤프 비율
    max_drawdown: float = 0.0         # 최대 낙폭 MDD (%)
    win_rate: float = 0.0             # 승률 (%)
    avg_profit: float = 0.0           # 수익 거래 평균 순이익
    avg_loss: float = 0.0             # 손실 거래 평균 순손실
    profit_factor: float = 0.0        # 총이익 / 총손실
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_fees: float = 0.0           # 청산 거래 수수료 합계
    realized_pnl: float = 0.0         # 순실현 손익 합계
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0

    def summary(self) -> str:
        """성과 요약 문자열."""
        lines = [
            "=" * 50,
            "백테스트 성과 리포트",
            "=" * 50,
            f"총 수익률:       {self.total_return:>10.2f}%",
            f"샤프 비율:       {self.sharpe_ratio:>10.2f}",
            f"최대 낙폭(MDD):  {self.max_drawdown:>10.2f}%",
            "-" * 50,
            f"총 거래 횟수:    {self.total_trades:>10d}",
            f"승률:            {self.win_rate:>10.2f}%",
            f"수익 거래:       {self.winning_trades:>10d}",
            f"손실 거래:       {self.losing_trades:>10d}",
            f"평균 수익:       {self.avg_profit:>10,.2f}",
            f"평균 손실:       {self.avg_loss:>10,.2f}",
            f"수익 팩터:       {self.profit_factor:>10.2f}",
            f"실현 손익:       {self.realized_pnl:>10,.2f}",
            f"총 수수료:       {self.total_fees:>10,.2f}",
            "-" * 50,
            f"최대 연속 수익:  {self.max_consecutive_wins:>10d}",
            f"최대 연속 손실:  {self.max_consecutive_losses:>10d}",
            "=" * 50,
        ]
        return "\n".join(lines)


def calculate_metrics(
    trades: list[Trade],
    equity_curve: list[float],
    initial_balance: float,
    periods_per_year: int = 365,
) -> BacktestMetrics:
    """성과 지표 계산. engine.py에서 백테스트 종료 후 호출됨.

    Args:
        trades: 청산 거래 목록
        equity_curve: 캔들별 equity (잔고 + 미실현 손익)
        initial_balance: 초기 자금
        periods_per_year: 샤프 비율 연환산 계수 (일봉 암호화폐 기준 365)
    """
    metrics = BacktestMetrics()

    # ─── 수익률 / 샤프 / MDD ─────────────────────────────────────────────────
    if equity_curve and initial_balance > 0:
        metrics.total_return = (equity_curve[-1] - initial_balance) / initial_balance * 100

        values = np.array([initial_balance, *equity_curve], dtype=float)
        returns = np.diff(values) / values[:-1]
        if len(returns) > 1 and np.std(returns) > 0:
            metrics.sharpe_ratio = float(np.mean(returns) / np.std(returns) * np.sqrt(periods_per_year))

        # 고점 대비 최대 하락폭
        peaks = np.maximum.accumulate(values)
        drawdowns = (peaks - values) / peaks * 100
        metrics.max_drawdown = float(drawdowns.max())

    # ─── 거래 기반 지표 ──────────────────────────────────────────────────────
    metrics.total_trades = len(trades)
    if not trades:
        return metrics

    profits = [t.net_pnl for t in trades]
    winners = [p for p in profits if p > 0]
    losers = [p for p in profits if p <= 0]

    metrics.winning_trades = len(winners)
    metrics.losing_trades = len(losers)
    metrics.win_rate = len(winners) / len(trades) * 100
    metrics.total_fees = sum(t.fee for t in trades)
    metrics.realized_pnl = sum(profits)

    if winners:
        metrics.avg_profit = sum(winners) / len(winners)
    if losers:
        metrics.avg_loss = sum(losers) / len(losers)

    total_profit = sum(winners)
    total_loss = abs(sum(losers))
    metrics.profit_factor = total_profit / total_loss if total_loss > 0 else float("inf")

    # 연속 승패
    consecutive_wins = 0
    consecutive_losses = 0
    for p in profits:
        if p > 0:
            consecutive_wins += 1
            consecutive_losses = 0
            metrics.max_consecutive_wins = max(metrics.max_consecutive_wins, consecutive_wins)
        else:
            consecutive_losses += 1
            consecutive_wins = 0
            metrics.max_consecutive_losses = max(metrics.max_consecutive_losses, consecutive_losses)

    return metrics
