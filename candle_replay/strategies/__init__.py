"""
전략 패키지 + 이름 기반 레지스트리.

[ 등록 ]
    @register("이름")을 붙인 TradingStrategy 하위 클래스가 STRATEGY_REGISTRY에 들어간다.
    같은 이름을 다른 클래스가 다시 쓰면 ConfigurationError.

[ 조회 / 생성 ]
    create_strategy(name, params)   - config.strategy.name + config.strategy_params()로 인스턴스 생성
    get_strategy_class(name)        - 클래스만 조회 (RLTrainer 등 타입 확인용)
    strategy_defaults(name)         - BASE_PARAMS + DEFAULT_PARAMS 병합 기본값 (설정 파일 작성용)
    list_strategies()               - 등록된 이름 목록

[ 새 전략 추가 ]
    이 디렉토리에 *_strategy.py 를 만들고 indicators / evaluate_entry / evaluate_exit 구현 후 @register.
    패키지 임포트 시 _auto_discover()가 모듈을 모두 임포트하므로 엔진은 수정할 필요 없다.
"""

from importlib import import_module
from pathlib import Path
from typing import Any

from candle_replay.core.errors import ConfigurationError
from candle_replay.core.trading_strategy import TradingStrategy

STRATEGY_REGISTRY: dict[str, type[TradingStrategy]] = {}


def register(name: str):
    """STRATEGY_REGISTRY 등록 데코레이터."""
    def decorator(cls: type[TradingStrategy]):
        registered = STRATEGY_REGISTRY.get(name)
        if registered is not None and registered is not cls:
            raise ConfigurationError(
                f"전략 이름 중복: '{name}' ({registered.__name__} / {cls.__name__})"
            )
        STRATEGY_REGISTRY[name] = cls
        return cls
    return decorator


def get_strategy_class(name: str) -> type[TradingStrategy]:
    try:
        return STRATEGY_REGISTRY[name]
    except KeyError:
        available = ", ".join(list_strategies())
        raise ConfigurationError(f"알 수 없는 전략: '{name}'. 사용 가능: {available}") from None


def create_strategy(name: str, params: dict[str, Any] | None = None) -> TradingStrategy:
    """이름으로 전략 인스턴스 생성.

    Raises:
        ConfigurationError: 미등록 이름, 알 수 없는 파라미터 키, 범위를 벗어난 값
    """
    return get_strategy_class(name)(params=params)


def strategy_defaults(name: str) -> dict[str, Any]:
    cls = get_strategy_class(name)
    return {**cls.BASE_PARAMS, **cls.DEFAULT_PARAMS}


def list_strategies() -> list[str]:
    return sorted(STRATEGY_REGISTRY)


def _auto_discover() -> None:
    """이 디렉토리의 전략 모듈을 모두 임포트하여 @register가 실행되게 한다."""
    for py_file in sorted(Path(__file__).parent.glob("*.py")):
        if py_file.name.startswith("_"):
            continue
        import_module(f"{__name__}.{py_file.stem}")


_auto_discover()
