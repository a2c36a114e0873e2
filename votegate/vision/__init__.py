from .types import DescriptorExtractor, FaceLandmarks, FrameSource, LandmarkDetector

__all__ = [
    "DescriptorExtractor",
    "FaceLandmarks",
    "FrameSource",
    "LandmarkDetector",
]
