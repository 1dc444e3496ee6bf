from atomize.application.services.condition_evaluator import ConditionEvaluator
from atomize.application.services.confidence_scorer import ConfidenceScorer
from atomize.application.services.dependency_resolver import DependencyResolver
from atomize.application.services.estimation_calculator import EstimationCalculator, normalize_percentages
from atomize.application.services.filter_translator import FilterTranslator
from atomize.application.services.outlier_detector import OutlierDetector
from atomize.application.services.pattern_detector import PatternDetector
from atomize.application.services.task_merger import TaskMerger
from atomize.application.services.template_validator import TemplateValidator

__all__ = [
    "ConditionEvaluator",
    "ConfidenceScorer",
    "DependencyResolver",
    "EstimationCalculator",
    "FilterTranslator",
    "OutlierDetector",
    "PatternDetector",
    "TaskMerger",
    "TemplateValidator",
    "normalize_percentages",
]
