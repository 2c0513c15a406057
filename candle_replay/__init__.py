"""
=============================================================================
봉 리플레이 백테스터 (Candle Replay)
=============================================================================

[ 시스템 전체 구조 ]

    BacktestEngine.from_config(config, provider).execute()
         │
         ├── utils/config.py        ← config.yaml 설정 로드
         ├── utils/logger.py        ← 로깅
         │
         ├── data/file_provider.py  ← DataFrame / CSV / JSON 봉 데이터 로드
         ├── data/integrity.py      ← 타임스탬프 순서/간격 검사
         ├── data/quote_series.py   ← 불변 봉 시퀀스 + 전진 커서
         │
         ├── indicators/            ← 증분 지표 파이프라인 (MA, EMA, ATR, SuperTrend, 캔들 패턴, 압축 구간)
         ├── strategies/            ← 매매 전략 (진입/청산 시그널)
         │
         └── backtest/engine.py     ← 리플레이 루프
               │
               ├── data/ledger.py           ← 포지션 상태 머신 + 체결 로그
               ├── backtest/accountant.py   ← 체결 로그 → 완결 거래 (수수료/reward/낙폭)
               └── backtest/metrics.py      ← 성과 지표


[ 핵심 추상 클래스 (core/) ]

    core/data_provider.py    → data/file_provider.py::DataFrameProvider, CsvDataProvider
    core/trading_strategy.py → strategies/*.py (@register로 등록)


[ 데이터 흐름 ]

    1. DataProvider가 봉 데이터 제공 → 무결성 검사 → QuoteSeries
    2. IndicatorPipeline이 전략이 요구한 지표를 봉마다 부착 (t 시점 값은 0..t 봉만 사용)
    3. 봉마다 전략이 청산(보유 중) 또는 진입(미보유) 시그널 반환
    4. PositionLedger가 수량 계산 + 자본 갱신 + Transaction 기록
    5. TradeAccountant가 체결 로그를 거래 단위로 묶어 BacktestReport 생성


[ 강화학습 ]

    strategies/rl_strategy.py  ← 선형 Q 함수 + ε-greedy 전략
    learning/                  ← Q 함수, 리플레이 버퍼, 상태 정규화, 에피소드 학습기
"""
