"""kube-driver: bootstrap Kubernetes nodes on Amazon Linux."""
