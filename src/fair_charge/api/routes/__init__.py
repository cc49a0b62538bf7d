from fair_charge.api.routes.analysis import analysis_bp
from fair_charge.api.routes.rules import rules_bp
from fair_charge.api.routes.monitoring import monitoring_bp

__all__ = ['analysis_bp', 'rules_bp', 'monitoring_bp']
