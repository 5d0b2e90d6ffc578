"""Analysis modules for emotion extraction and face sampling"""

from facesense.analysis.emotion import EmotionExtractor, EmotionHistory
from facesense.analysis.sampling import SamplingLoop, select_primary_detection

__all__ = ['EmotionExtractor', 'EmotionHistory', 'SamplingLoop', 'select_primary_detection']
