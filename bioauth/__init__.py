"""
bioauth: Biometric Image Authentication Pipeline

Prepares biometric image datasets, trains transfer-learning CNN classifiers
on them and evaluates the resulting identification/authentication models.

Main components:
    - config: Configuration loading and management
    - image_store: Image enumeration and I/O (labels from folder names)
    - dataset_organizer: Subject folders, auth datasets, augmentation
    - training: Train/validation/test splitting and model training
    - evaluation: Identification accuracy and authentication F1
    - classifier: Classifier interface, stub and torchvision implementation

Usage:
    from bioauth import format_dataset, create_auth_dataset, train_model
    from bioauth import SplitFractions, Hyperparameters, ModelEvaluator
"""

from bioauth.config import (
    get_config,
    get_section,
    get_dataset_config,
    get_training_config,
    get_device_config,
    get_evaluation_config,
)

from bioauth.image_store import (
    LabeledImage,
    iter_files,
    load_labeled_images,
    read_image_bytes,
    read_image,
    write_image,
)

from bioauth.dataset_organizer import (
    MalformedNamePolicy,
    ROTATION_ANGLES,
    parse_subject_prefix,
    subject_folder_name,
    format_dataset,
    copy_dataset,
    create_auth_dataset,
    rotate_image,
    augment_dataset,
    oversample_dataset,
)

from bioauth.classifier import (
    Hyperparameters,
    ImageClassifier,
    StubClassifier,
)

from bioauth.training import (
    SplitFractions,
    DatasetSplit,
    split_images,
    build_artifact_path,
    train_model,
)

from bioauth.evaluation import (
    NEGATIVE_LABEL,
    Outcome,
    ConfusionCounts,
    IdentificationResult,
    AuthenticationResult,
    ModelEvaluator,
    classify_outcome,
    evaluate_identification,
    evaluate_authentication,
    save_confusion_matrix_plot,
)

__all__ = [
    # Configuration
    "get_config",
    "get_section",
    "get_dataset_config",
    "get_training_config",
    "get_device_config",
    "get_evaluation_config",
    # Image store
    "LabeledImage",
    "iter_files",
    "load_labeled_images",
    "read_image_bytes",
    "read_image",
    "write_image",
    # Dataset organizer
    "MalformedNamePolicy",
    "ROTATION_ANGLES",
    "parse_subject_prefix",
    "subject_folder_name",
    "format_dataset",
    "copy_dataset",
    "create_auth_dataset",
    "rotate_image",
    "augment_dataset",
    "oversample_dataset",
    # Classifier
    "Hyperparameters",
    "ImageClassifier",
    "StubClassifier",
    # Training
    "SplitFractions",
    "DatasetSplit",
    "split_images",
    "build_artifact_path",
    "train_model",
    # Evaluation
    "NEGATIVE_LABEL",
    "Outcome",
    "ConfusionCounts",
    "IdentificationResult",
    "AuthenticationResult",
    "ModelEvaluator",
    "classify_outcome",
    "evaluate_identification",
    "evaluate_authentication",
    "save_confusion_matrix_plot",
]
