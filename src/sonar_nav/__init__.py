"""
Sonar Navigation

Obstacle signal stabilization for blind navigation: turns noisy per-frame
detector output into a debounced, rate-limited "obstacle ahead" signal plus
left/center/right steering guidance.

Components:
- ObstacleDetectionPipeline: per-frame orchestration of every stage
- PipelineWorker / LatestSlot: latest-frame handoff onto a dedicated thread
- DetectionSettings / SettingsStore: configuration and live updates
"""

from .core.navigation.detection_pipeline import ObstacleDetectionPipeline, PipelineResult
from .core.processing.frame_worker import LatestSlot, PipelineWorker
from .utils.settings import DetectionSettings, SettingsStore

__all__ = [
    'DetectionSettings',
    'LatestSlot',
    'ObstacleDetectionPipeline',
    'PipelineResult',
    'PipelineWorker',
    'SettingsStore',
]
__version__ = '0.1.0'
