import sys
from pathlib import Path

# 프로젝트 루트를 sys.path에 추가하여 테스트에서 candle_replay를 바로 임포트
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)
